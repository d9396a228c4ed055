from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from . import pipeline
from .pipeline import BuildResult, ProjectPaths, run_build
from .server import make_server, resolve_port
from .utils import HozokuraError
from .watch import RebuildScheduler, watch_targets


def default_targets(paths: ProjectPaths) -> list[Path]:
    return [paths.content_dir, paths.theme_dir, paths.config_path, Path(pipeline.__file__)]


def timed_build(paths: ProjectPaths) -> BuildResult:
    start = time.perf_counter()
    result = run_build(paths)
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    print(f"Site generated in: {paths.output_dir}")
    return result


def preview(paths: ProjectPaths, host: str, port: int) -> None:
    scheduler = RebuildScheduler(lambda: run_build(paths))
    observer = watch_targets(scheduler, default_targets(paths))
    try:
        server = make_server(paths.output_dir, port, host)
    except OSError as exc:
        observer.stop()
        observer.join()
        print(f"Cannot start preview server on port {port}: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Preview server running at http://localhost:{port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("Stopping preview server.")
    finally:
        scheduler.close()
        observer.stop()
        observer.join()
        server.server_close()


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--root", default=".", help="Project directory containing content/, theme/ and the config.")
    common.add_argument("--output", default=None, help="Output directory for the site (default: dist).")
    common.add_argument("--config", default=None, help="Path to site config file (JSON/TOML/YAML).")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    parser = argparse.ArgumentParser(prog="hozokura", description="Markdown blog generator with short link sync.")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("build", parents=[common], help="Build the site once.")
    serve = commands.add_parser("preview", parents=[common], help="Build, watch for changes and serve the site.")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind the preview server to.")
    serve.add_argument("--port", default=None, help="Port for the preview server (default: $PORT or 4173).")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    paths = ProjectPaths.from_root(
        Path(args.root),
        output=Path(args.output) if args.output else None,
        config=Path(args.config) if args.config else None,
    )
    load_dotenv(paths.root / ".env")

    try:
        timed_build(paths)
    except (HozokuraError, OSError) as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.command == "preview":
        preview(paths, args.host, resolve_port(args.port, os.environ))


if __name__ == "__main__":
    main()
