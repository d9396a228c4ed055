"""Mint short links for posts through a Sink-compatible service and persist them in the sources."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, Optional, Union

import httpx

from .config import SiteConfig
from .content import Document, write_short_link
from .utils import join_url, normalize_base

logger = logging.getLogger(__name__)

CREATE_PATH = "/api/link/create"
REQUEST_TIMEOUT = 10.0


@dataclass(frozen=True)
class LinkCreated:
    short_link: str


@dataclass(frozen=True)
class LinkConflict:
    short_link: str


@dataclass(frozen=True)
class LinkUnparsed:
    body: Any


@dataclass(frozen=True)
class LinkFailed:
    reason: str


LinkResult = Union[LinkCreated, LinkConflict, LinkUnparsed, LinkFailed]
ExtractionRule = Callable[[Mapping[str, Any], str], Optional[str]]


def field_rule(name: str) -> ExtractionRule:
    def rule(data: Mapping[str, Any], service_url: str) -> str | None:
        value = data.get(name)
        return value if isinstance(value, str) and value else None

    rule.__name__ = f"from_{name}"
    return rule


def slug_rule(data: Mapping[str, Any], service_url: str) -> str | None:
    slug = data.get("slug")
    if slug is None or slug == "":
        return None
    return join_url(service_url, str(slug))


# Sink has answered with each of these shapes over time; first match wins.
EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    field_rule("link"),
    field_rule("shortLink"),
    field_rule("shortUrl"),
    field_rule("url"),
    slug_rule,
)


def extract_short_link(data: object, service_url: str) -> str | None:
    if not isinstance(data, Mapping):
        return None
    for rule in EXTRACTION_RULES:
        link = rule(data, service_url)
        if link:
            return link
    return None


def has_short_link(doc: Document) -> bool:
    # Older builds stored the whole response object; only a plain string counts.
    return isinstance(doc.short_link, str) and bool(doc.short_link)


@dataclass
class SyncReport:
    created: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class ShortLinkSynchronizer:
    def __init__(
        self,
        service_url: str,
        api_key: str,
        site_url: str,
        base_url: str = "/",
        client: httpx.Client | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.service_url = service_url.rstrip("/")
        self.api_key = api_key
        self.site_url = site_url.rstrip("/")
        self.base_url = normalize_base(base_url)
        self.client = client
        self.timeout = timeout

    def long_url(self, doc: Document) -> str:
        return f"{self.site_url}{self.base_url}posts/{doc.slug}/"

    @contextlib.contextmanager
    def open_client(self) -> Iterator[httpx.Client]:
        if self.client is not None:
            yield self.client
            return
        with httpx.Client(timeout=self.timeout) as client:
            yield client

    def request_link(self, client: httpx.Client, doc: Document) -> LinkResult:
        try:
            response = client.post(
                f"{self.service_url}{CREATE_PATH}",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"url": self.long_url(doc), "slug": doc.slug},
            )
        except httpx.HTTPError as exc:
            return LinkFailed(f"request failed: {exc}")
        if response.status_code == 409:
            return LinkConflict(join_url(self.service_url, doc.slug))
        if not response.is_success:
            return LinkFailed(f"{response.status_code} {response.text}")
        try:
            data = response.json()
        except ValueError:
            return LinkUnparsed(response.text)
        link = extract_short_link(data, self.service_url)
        if link is None:
            return LinkUnparsed(data)
        return LinkCreated(link)

    def apply(self, doc: Document, result: LinkResult, report: SyncReport) -> None:
        if isinstance(result, (LinkCreated, LinkConflict)):
            if isinstance(result, LinkConflict):
                logger.info("Link already exists for %s, using default construction.", doc.slug)
                report.conflicts.append(doc.slug)
            else:
                logger.info("Generated: %s", result.short_link)
                report.created.append(doc.slug)
            try:
                write_short_link(doc, result.short_link)
            except OSError as exc:
                logger.error("Could not write short link back to %s: %s", doc.source_path, exc)
        elif isinstance(result, LinkUnparsed):
            logger.warning("No short link found in response for %s: %r", doc.slug, result.body)
            report.failed.append(doc.slug)
        else:
            logger.error("Failed to create link for %s: %s", doc.slug, result.reason)
            report.failed.append(doc.slug)

    def sync(self, documents: list[Document]) -> SyncReport:
        report = SyncReport()
        with self.open_client() as client:
            for doc in documents:
                if has_short_link(doc):
                    report.skipped.append(doc.slug)
                    continue
                logger.info("Creating short link for: %s (%s)", doc.title, doc.slug)
                self.apply(doc, self.request_link(client, doc), report)
        return report


def sync_short_links(
    documents: list[Document],
    config: SiteConfig,
    environ: Mapping[str, str],
    client: httpx.Client | None = None,
) -> SyncReport | None:
    service_url = (environ.get("SINK_API_URL") or config.short_link_url).strip()
    api_key = (environ.get("SINK_API_KEY") or "").strip()
    if not service_url or not api_key or not config.site_url:
        logger.info("Skipping Sink sync: Missing SINK_API_URL, SINK_API_KEY or siteUrl")
        return None
    logger.info("Syncing with Sink...")
    synchronizer = ShortLinkSynchronizer(service_url, api_key, config.site_url, config.base_url, client=client)
    return synchronizer.sync(documents)
