from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from .markup import MarkdownTransformer, TocEntry
from .utils import slugify

logger = logging.getLogger(__name__)

DATE_FMT = "%Y-%m-%d"
SUMMARY_LENGTH = 120
EXTRA_DATE_FORMATS = ("%Y/%m/%d", "%Y/%m/%d %H:%M", "%Y/%m/%d %H:%M:%S")


@dataclass
class TaxonomyRef:
    label: str
    slug: str


@dataclass
class Document:
    slug: str
    title: str
    date: dt.datetime
    date_text: str
    summary: str
    html: str
    toc: list[TocEntry] = field(default_factory=list)
    tags: list[TaxonomyRef] = field(default_factory=list)
    categories: list[TaxonomyRef] = field(default_factory=list)
    short_link: Any = None
    source_path: Path | None = None
    raw_body: str = ""
    raw_meta: dict[str, Any] = field(default_factory=dict)
    front_matter_ok: bool = True


def parse_front_matter(text: str, source: Path | None = None) -> tuple[dict[str, Any], str, bool]:
    clean_text = text.lstrip("\ufeff")
    try:
        parsed = frontmatter.loads(clean_text)
    except (yaml.YAMLError, ValueError) as exc:
        logger.warning("Ignoring malformed front matter in %s: %s", source or "<text>", exc)
        return {}, clean_text, False
    return dict(parsed.metadata), parsed.content, True


def split_source(text: str) -> tuple[str, str]:
    """Split raw file text into the front matter block and the untouched remainder."""
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines(keepends=True)
    if not lines or lines[0].strip() != "---":
        return "", clean_text
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            return "".join(lines[: i + 1]), "".join(lines[i + 1 :])
    return "", clean_text


def to_list(value: object) -> list[str]:
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value if item is not None]
    elif isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
    else:
        return []
    return [item for item in items if item]


def to_taxonomy(value: object, source: Path | None = None) -> list[TaxonomyRef]:
    refs = []
    for label in to_list(value):
        slug = slugify(label)
        if not slug:
            logger.warning("Dropping taxonomy label %r in %s: it has no usable slug", label, source or "<text>")
            continue
        refs.append(TaxonomyRef(label=label, slug=slug))
    return refs


def to_naive_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


def parse_date(value: object, now: dt.datetime) -> tuple[dt.datetime, str]:
    if value is None or value == "":
        return now, now.strftime(DATE_FMT)
    parsed = None
    if isinstance(value, dt.datetime):
        parsed = to_naive_utc(value)
    elif isinstance(value, dt.date):
        parsed = dt.datetime.combine(value, dt.time.min)
    else:
        raw = str(value).strip()
        try:
            parsed = to_naive_utc(dt.datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError:
            for fmt in EXTRA_DATE_FORMATS:
                try:
                    parsed = dt.datetime.strptime(raw, fmt)
                    break
                except ValueError:
                    continue
    if parsed is None:
        return now, str(value)[:10]
    return parsed, parsed.strftime(DATE_FMT)


def make_summary(meta: dict[str, Any], body: str) -> str:
    summary = meta.get("summary")
    if summary:
        return str(summary)
    return body[:SUMMARY_LENGTH].replace("\n", " ")


def load_document(path: Path, transformer: MarkdownTransformer, now: dt.datetime) -> Document:
    raw_text = path.read_text(encoding="utf-8")
    meta, body, front_matter_ok = parse_front_matter(raw_text, path)
    slug = str(meta.get("slug") or path.stem).strip()
    date, date_text = parse_date(meta.get("date"), now)
    rendered = transformer.render(body)
    return Document(
        slug=slug,
        title=str(meta.get("title") or slug),
        date=date,
        date_text=date_text,
        summary=make_summary(meta, body),
        html=rendered.html,
        toc=rendered.toc,
        tags=to_taxonomy(meta.get("tags") or meta.get("tag"), path),
        categories=to_taxonomy(meta.get("categories") or meta.get("category"), path),
        short_link=meta.get("shortLink"),
        source_path=path,
        raw_body=body,
        raw_meta=meta,
        front_matter_ok=front_matter_ok,
    )


def load_documents(
    posts_dir: Path, transformer: MarkdownTransformer, now: dt.datetime | None = None
) -> list[Document]:
    now = now or dt.datetime.now(dt.timezone.utc).replace(tzinfo=None, microsecond=0)
    posts_dir.mkdir(parents=True, exist_ok=True)
    documents = [load_document(path, transformer, now) for path in sorted(posts_dir.glob("*.md"))]

    owners: dict[str, Path | None] = {}
    for doc in documents:
        if doc.slug in owners:
            logger.warning(
                "Duplicate slug %r in %s and %s; one route will be overwritten",
                doc.slug,
                owners[doc.slug],
                doc.source_path,
            )
        owners.setdefault(doc.slug, doc.source_path)

    documents.sort(key=lambda doc: doc.date, reverse=True)
    return documents


def dump_front_matter(meta: dict[str, Any]) -> str:
    return yaml.safe_dump(meta, allow_unicode=True, sort_keys=False, default_flow_style=False)


def write_short_link(doc: Document, short_link: str) -> None:
    """Persist `shortLink` into the document's source file, leaving the body byte-for-byte intact."""
    doc.short_link = short_link
    doc.raw_meta = {**doc.raw_meta, "shortLink": short_link}
    if doc.source_path is None:
        return
    if not doc.front_matter_ok:
        logger.warning("Not rewriting %s: its front matter could not be parsed", doc.source_path)
        return
    _, remainder = split_source(doc.source_path.read_text(encoding="utf-8"))
    text = f"---\n{dump_front_matter(doc.raw_meta)}---\n{remainder}"
    doc.source_path.write_text(text, encoding="utf-8")
