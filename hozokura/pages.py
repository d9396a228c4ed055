from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import SiteConfig
from .content import Document
from .markup import MarkdownTransformer
from .render import LayoutRenderer, NavLink, PageModel, PageRenderer, copy_theme_assets, write_page
from .taxonomy import Taxonomies, TaxonomyEntry, sorted_entries
from .utils import join_url, reset_output_dir

logger = logging.getLogger(__name__)

HOME_PLACEHOLDER = "<p>写下你的第一篇文章吧，故事从这里开始。</p>"
TAXONOMY_LABELS = {"tags": "标签", "categories": "分类"}
LICENSE_HTML = (
    '本博客所有文章除特别声明外，均采用 <a href="https://creativecommons.org/licenses/by-nc-sa/4.0/" '
    'target="_blank">CC BY-NC-SA 4.0</a> 许可协议。转载请注明出处。'
)


@dataclass
class SiteContext:
    config: SiteConfig
    documents: list[Document]
    taxonomies: Taxonomies
    renderer: PageRenderer
    nav: list[NavLink] = field(default_factory=list)

    @property
    def root(self) -> str:
        return self.config.base_url

    def page(self, title: str, content: str, toc=None) -> str:
        model = PageModel(
            title=title,
            content=content,
            base_url=self.root,
            nav=self.nav,
            toc=list(toc or []),
            tags=list(self.taxonomies.tags.values()),
            categories=list(self.taxonomies.categories.values()),
        )
        return self.renderer.render_page(model)


def build_nav(config: SiteConfig) -> list[NavLink]:
    root = config.base_url
    links = [NavLink("主页", root), NavLink("文章", f"{root}articles/"), NavLink("随机文章", f"{root}random/")]
    for item in config.raw.get("nav") or []:
        if isinstance(item, dict) and item.get("label") and item.get("href"):
            links.append(NavLink(str(item["label"]), str(item["href"])))
    return links


def post_url(root: str, doc: Document) -> str:
    return f"{root}posts/{doc.slug}/"


def render_pills(root: str, doc: Document) -> str:
    pills = [
        f'<a class="pill" href="{root}categories/{cat.slug}/">{html.escape(cat.label)}</a>' for cat in doc.categories
    ]
    pills.extend(f'<a class="pill" href="{root}tags/{tag.slug}/">{html.escape(tag.label)}</a>' for tag in doc.tags)
    return f'<div class="pill-row">{"".join(pills)}</div>' if pills else ""


def render_post_items(root: str, documents: list[Document], pills: bool) -> str:
    items = []
    for doc in documents:
        url = post_url(root, doc)
        items.append(
            '<article class="post-item">'
            f'<div class="post-meta">{html.escape(doc.date_text)}</div>'
            '<div class="title-row">'
            f'<h2><a href="{url}">{html.escape(doc.title)}</a></h2>'
            f'<a class="read-more" href="{url}">阅读</a>'
            "</div>"
            f"<p>{html.escape(doc.summary)}</p>"
            f'{render_pills(root, doc) if pills else ""}'
            "</article>"
        )
    return "".join(items)


def build_home(site: SiteContext, output_dir: Path, home_path: Path, transformer: MarkdownTransformer) -> int:
    if home_path.exists():
        home_html = transformer.render(home_path.read_text(encoding="utf-8")).html
    else:
        home_html = HOME_PLACEHOLDER
    content = (
        '<section class="article-card">'
        '<div class="eyebrow">关于</div>'
        "<h1>博主自述</h1>"
        f"{home_html}"
        "</section>"
    )
    write_page(output_dir, site.page(str(site.config.profile.get("name") or "主页"), content))
    return 1


def build_articles(site: SiteContext, output_dir: Path) -> int:
    content = (
        '<section class="article-card">'
        '<div class="eyebrow">全部文章</div>'
        "<h1>文章一览</h1>"
        f'<div class="post-list">{render_post_items(site.root, site.documents, pills=True)}</div>'
        "</section>"
    )
    write_page(output_dir / "articles", site.page("文章列表", content))
    return 1


def build_taxonomy_index(site: SiteContext, output_dir: Path, kind: str, mapping: dict[str, TaxonomyEntry]) -> int:
    label = TAXONOMY_LABELS[kind]
    cards = "".join(
        f'<a class="tax-card" href="{site.root}{kind}/{entry.slug}/">'
        f'<div class="tax-name">{html.escape(entry.label)}</div>'
        f'<div class="tax-count">{len(entry.posts)} 篇</div>'
        "</a>"
        for entry in sorted_entries(mapping)
    )
    content = (
        '<section class="article-card">'
        f'<div class="eyebrow">{label}目录</div>'
        f"<h1>{label}</h1>"
        f'<div class="tax-grid">{cards}</div>'
        "</section>"
    )
    write_page(output_dir / kind, site.page(label, content))
    return 1


def build_taxonomy_pages(site: SiteContext, output_dir: Path, kind: str, mapping: dict[str, TaxonomyEntry]) -> int:
    label = TAXONOMY_LABELS[kind]
    for entry in mapping.values():
        content = (
            '<section class="article-card">'
            f'<div class="eyebrow">{label}</div>'
            f"<h1>{html.escape(entry.label)}</h1>"
            f'<div class="post-list">{render_post_items(site.root, entry.posts, pills=False)}</div>'
            "</section>"
        )
        write_page(output_dir / kind / entry.slug, site.page(f"{label} · {entry.label}", content))
    return len(mapping)


def render_chip_row(root: str, title: str, kind: str, refs) -> str:
    if not refs:
        return ""
    chips = "".join(f'<a class="chip" href="{root}{kind}/{ref.slug}/">{html.escape(ref.label)}</a>' for ref in refs)
    return f'<div class="chip-row"><span class="chip-label">{title}</span>{chips}</div>'


def render_link_row(site: SiteContext, doc: Document) -> str:
    if site.config.short_link_enabled and isinstance(doc.short_link, str) and doc.short_link:
        link = html.escape(doc.short_link)
    elif site.config.site_url:
        link = html.escape(join_url(site.config.site_url, post_url(site.root, doc)))
    else:
        link = html.escape(post_url(site.root, doc))
    return (
        '<div class="copyright-item">'
        '<span class="cp-label">本文链接：</span>'
        f'<span class="cp-value"><a class="post-link" href="{link}">{link}</a></span>'
        f'<button class="copy-btn" data-copy="{link}">复制</button>'
        "</div>"
    )


def build_post(site: SiteContext, output_dir: Path, doc: Document) -> None:
    author = html.escape(str(site.config.profile.get("name") or ""))
    content = (
        '<article class="article-card">'
        f'<div class="eyebrow">{html.escape(doc.date_text)}</div>'
        f"<h1>{html.escape(doc.title)}</h1>"
        '<div class="meta-chips">'
        f'{render_chip_row(site.root, "分类", "categories", doc.categories)}'
        f'{render_chip_row(site.root, "标签", "tags", doc.tags)}'
        "</div>"
        f"{doc.html}"
        "</article>"
        '<section class="article-card copyright-card">'
        "<h3>版权声明</h3>"
        '<div class="copyright-grid">'
        '<div class="copyright-item"><span class="cp-label">本文标题：</span>'
        f'<span class="cp-value">{html.escape(doc.title)}</span></div>'
        '<div class="copyright-item"><span class="cp-label">本文作者：</span>'
        f'<span class="cp-value">{author}</span></div>'
        f"{render_link_row(site, doc)}"
        '<div class="copyright-item full-width"><span class="cp-label">版权声明：</span>'
        f'<span class="cp-value">{LICENSE_HTML}</span></div>'
        "</div>"
        "<script>"
        "document.querySelectorAll('.copy-btn').forEach((btn) => btn.addEventListener('click', () => {"
        "navigator.clipboard.writeText(btn.dataset.copy).then(() => {"
        "const original = btn.innerText; btn.innerText = '已复制';"
        "setTimeout(() => { btn.innerText = original; }, 2000); }); }));"
        "</script>"
        "</section>"
    )
    write_page(output_dir / "posts" / doc.slug, site.page(doc.title, content, toc=doc.toc))


def build_posts(site: SiteContext, output_dir: Path) -> int:
    for doc in site.documents:
        build_post(site, output_dir, doc)
    return len(site.documents)


def build_random(site: SiteContext, output_dir: Path) -> int:
    routes = [post_url(site.root, doc) for doc in site.documents]
    # Keep "</script>" in a slug from closing the inline script.
    routes_json = json.dumps(routes, ensure_ascii=False).replace("</", "<\\/")
    root_json = json.dumps(site.root, ensure_ascii=False).replace("</", "<\\/")
    script = (
        "<script>\n"
        f"  const posts = {routes_json};\n"
        "  if (posts.length > 0) {\n"
        "    window.location.href = posts[Math.floor(Math.random() * posts.length)];\n"
        "  } else {\n"
        f"    window.location.href = {root_json};\n"
        "  }\n"
        "</script>"
    )
    write_page(
        output_dir / "random",
        f'<!DOCTYPE html><html><head><meta charset="utf-8">{script}</head><body></body></html>',
    )
    return 1


def assemble_site(
    config: SiteConfig,
    documents: list[Document],
    taxonomies: Taxonomies,
    output_dir: Path,
    theme_dir: Path,
    home_path: Path,
    project_root: Path,
    renderer: PageRenderer | None = None,
    transformer: MarkdownTransformer | None = None,
) -> int:
    renderer = renderer or LayoutRenderer.from_theme(config, theme_dir)
    transformer = transformer or MarkdownTransformer(config.hide_tip)
    site = SiteContext(config, documents, taxonomies, renderer, nav=build_nav(config))

    reset_output_dir(output_dir, project_root)
    copy_theme_assets(theme_dir, output_dir)

    pages = build_home(site, output_dir, home_path, transformer)
    pages += build_articles(site, output_dir)
    pages += build_taxonomy_index(site, output_dir, "tags", taxonomies.tags)
    pages += build_taxonomy_index(site, output_dir, "categories", taxonomies.categories)
    pages += build_posts(site, output_dir)
    pages += build_taxonomy_pages(site, output_dir, "tags", taxonomies.tags)
    pages += build_taxonomy_pages(site, output_dir, "categories", taxonomies.categories)
    pages += build_random(site, output_dir)
    logger.debug("Wrote %d pages to %s", pages, output_dir)
    return pages
