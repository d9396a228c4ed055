from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import httpx

from .config import CONFIG_NAME, load_site_config
from .content import Document, load_documents
from .markup import MarkdownTransformer
from .pages import assemble_site
from .shortlink import SyncReport, sync_short_links
from .taxonomy import Taxonomies, build_taxonomies

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectPaths:
    root: Path
    output_dir: Path
    config_path: Path

    @classmethod
    def from_root(cls, root: Path, output: Path | None = None, config: Path | None = None) -> ProjectPaths:
        root = root.resolve()
        output_dir = output if output is not None else Path("dist")
        config_path = config if config is not None else Path(CONFIG_NAME)
        return cls(
            root=root,
            output_dir=output_dir if output_dir.is_absolute() else root / output_dir,
            config_path=config_path if config_path.is_absolute() else root / config_path,
        )

    @property
    def content_dir(self) -> Path:
        return self.root / "content"

    @property
    def posts_dir(self) -> Path:
        return self.content_dir / "posts"

    @property
    def home_path(self) -> Path:
        return self.content_dir / "home.md"

    @property
    def theme_dir(self) -> Path:
        return self.root / "theme"


@dataclass
class BuildResult:
    pages: int
    documents: list[Document]
    taxonomies: Taxonomies
    sync: SyncReport | None


def run_build(
    paths: ProjectPaths,
    environ: Mapping[str, str] | None = None,
    client: httpx.Client | None = None,
    now: dt.datetime | None = None,
) -> BuildResult:
    environ = os.environ if environ is None else environ
    config = load_site_config(paths.config_path, environ)
    transformer = MarkdownTransformer(config.hide_tip)

    documents = load_documents(paths.posts_dir, transformer, now)
    taxonomies = build_taxonomies(documents)
    report = sync_short_links(documents, config, environ, client)
    pages = assemble_site(
        config,
        documents,
        taxonomies,
        paths.output_dir,
        paths.theme_dir,
        paths.home_path,
        paths.root,
        transformer=transformer,
    )
    logger.info("Build complete. Pages: %d", pages)
    return BuildResult(pages=pages, documents=documents, taxonomies=taxonomies, sync=report)
