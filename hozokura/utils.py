from __future__ import annotations

import re
import shutil
from pathlib import Path

SLUG_STRIP_RE = re.compile(r"[^a-z0-9一-龥\s-]")
WHITESPACE_RE = re.compile(r"\s+")
HYPHENS_RE = re.compile(r"-+")


class HozokuraError(Exception):
    pass


class BuildError(HozokuraError):
    pass


def slugify(text: str) -> str:
    text = str(text).lower()
    text = SLUG_STRIP_RE.sub("", text).strip()
    text = WHITESPACE_RE.sub("-", text)
    return HYPHENS_RE.sub("-", text)


def normalize_base(path: str | None) -> str:
    base = path or "/"
    if not base.startswith("/"):
        base = f"/{base}"
    if not base.endswith("/"):
        base = f"{base}/"
    return base


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return base
    return f"{base}/{path}"


def reset_output_dir(output_dir: Path, project_root: Path) -> None:
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise BuildError("Refusing to clean project root.")
    if not output_resolved.is_relative_to(root_resolved):
        raise BuildError(f"Refusing to clean output directory outside project root: {output_dir}")
    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)
