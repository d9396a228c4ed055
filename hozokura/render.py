from __future__ import annotations

import html
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pygments.formatters import HtmlFormatter

from .markup import TocEntry

if TYPE_CHECKING:
    from .config import SiteConfig
    from .taxonomy import TaxonomyEntry

logger = logging.getLogger(__name__)

SIDEBAR_PREVIEW = 5
GITHUB_RE = re.compile(r"github", re.IGNORECASE)
MAIL_LABEL_RE = re.compile(r"(mail|邮箱|email)", re.IGNORECASE)

BASE_TEMPLATE = """<!doctype html>
<html lang="zh-CN">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{{title}}</title>
  <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.5.2/css/all.min.css">
  <link rel="stylesheet" href="{{root}}assets/style.css">
  <link rel="stylesheet" href="{{root}}assets/pygments.css">
  {{extra_head}}
</head>
<body>
  <button class="mobile-menu-btn" aria-label="打开菜单">
    <span></span><span></span><span></span>
  </button>
  <div class="page">
    <aside class="sidebar">
      <div class="profile-card">
        {{profile}}
        <div class="menu">
          <ul>{{nav}}</ul>
        </div>
        <button class="theme-toggle" aria-label="切换明暗模式" data-mode="light">
          <span class="thumb">☀️</span>
          <span class="track"></span>
        </button>
        <div class="links">{{links}}</div>
      </div>
    </aside>
    <div class="drawer-overlay" aria-hidden="true"></div>
    <main class="content">
      {{content}}
    </main>
    {{sidebar}}
  </div>
  <script>
    (() => {
      const KEY = 'hozokura-theme';
      const btn = document.querySelector('.theme-toggle');
      const thumb = btn.querySelector('.thumb');
      const prefersDark = window.matchMedia('(prefers-color-scheme: dark)').matches;
      const apply = (mode) => {
        document.documentElement.dataset.theme = mode;
        btn.dataset.mode = mode;
        thumb.textContent = mode === 'dark' ? '🌙' : '☀️';
      };
      const stored = localStorage.getItem(KEY);
      apply(stored === 'dark' || stored === 'light' ? stored : prefersDark ? 'dark' : 'light');
      btn.addEventListener('click', () => {
        const next = btn.dataset.mode === 'dark' ? 'light' : 'dark';
        apply(next);
        localStorage.setItem(KEY, next);
      });
      const setDrawer = (open) => {
        document.documentElement.dataset.drawer = open ? 'open' : 'closed';
      };
      document.querySelector('.mobile-menu-btn')?.addEventListener('click', () => {
        setDrawer(document.documentElement.dataset.drawer !== 'open');
      });
      document.querySelector('.drawer-overlay')?.addEventListener('click', () => setDrawer(false));
      window.addEventListener('keyup', (e) => {
        if (e.key === 'Escape') setDrawer(false);
      });
      setDrawer(false);
      document.querySelectorAll('.show-all-btn').forEach((button) => {
        button.addEventListener('click', () => {
          const list = document.getElementById(button.dataset.target);
          if (list) {
            list.classList.add('show-all');
            button.style.display = 'none';
          }
        });
      });
    })();
  </script>
</body>
</html>
"""


@dataclass
class NavLink:
    label: str
    href: str


@dataclass
class PageModel:
    title: str
    content: str
    base_url: str
    nav: list[NavLink] = field(default_factory=list)
    toc: list[TocEntry] = field(default_factory=list)
    tags: list[TaxonomyEntry] = field(default_factory=list)
    categories: list[TaxonomyEntry] = field(default_factory=list)


class PageRenderer(Protocol):
    def render_page(self, model: PageModel) -> str: ...


def render_template(template: str, **context: str) -> str:
    output = template
    late_keys = {"content", "sidebar"}
    for key, value in context.items():
        if key in late_keys:
            continue
        output = output.replace(f"{{{{{key}}}}}", value)
    for key in late_keys:
        if key in context:
            output = output.replace(f"{{{{{key}}}}}", context[key])
    return output


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def write_page(output_dir: Path, html_doc: str) -> None:
    write_text(output_dir / "index.html", html_doc)


def copy_theme_assets(theme_dir: Path, output_dir: Path) -> None:
    assets_dir = output_dir / "assets"
    assets_dir.mkdir(parents=True, exist_ok=True)
    style = theme_dir / "style.css"
    if style.exists():
        shutil.copy2(style, assets_dir / "style.css")
    else:
        logger.warning("Theme stylesheet not found: %s", style)
    palette = theme_dir / "palette.json"
    if palette.exists():
        shutil.copy2(palette, assets_dir / "palette.json")
    write_text(assets_dir / "pygments.css", HtmlFormatter(style="default").get_style_defs(".codehilite"))


def profile_icon(link: dict) -> str:
    label = str(link.get("label") or "")
    href = str(link.get("href") or "")
    if GITHUB_RE.search(label) or "github.com" in href.lower():
        return "fa-brands fa-github"
    if href.lower().startswith("mailto:") or MAIL_LABEL_RE.search(label):
        return "fa-solid fa-envelope"
    return ""


def render_profile_links(profile: dict) -> str:
    items = []
    for link in profile.get("links") or []:
        if not isinstance(link, dict):
            continue
        href = html.escape(str(link.get("href") or ""))
        text = html.escape(str(link.get("label") or link.get("href") or ""))
        icon = profile_icon(link)
        inner = f'<i class="{icon}" aria-hidden="true"></i>' if icon else f"<span>{text}</span>"
        items.append(
            f'<a class="link-item" href="{href}" target="_blank" rel="noreferrer" aria-label="{text}">{inner}</a>'
        )
    return "".join(items)


def render_profile(profile: dict) -> str:
    avatar = str(profile.get("avatar") or "")
    if avatar:
        avatar_html = f'<div class="avatar has-image" style="background-image: url(\'{html.escape(avatar)}\')"></div>'
    else:
        avatar_html = '<div class="avatar"></div>'
    return (
        f"{avatar_html}"
        '<div class="profile-text">'
        f'<div class="eyebrow">{html.escape(str(profile.get("location") or "somewhere"))}</div>'
        f'<h1>{html.escape(str(profile.get("name") or "博主"))}</h1>'
        f'<p class="tagline">{html.escape(str(profile.get("tagline") or ""))}</p>'
        f'<p class="bio">{html.escape(str(profile.get("bio") or ""))}</p>'
        "</div>"
    )


def render_sidebar_section(title: str, section_id: str, kind: str, entries: list[TaxonomyEntry], root: str) -> str:
    if not entries:
        return ""
    rows = "".join(
        f'<li><a href="{root}{kind}/{entry.slug}/">{html.escape(entry.label)} ({len(entry.posts)})</a></li>'
        for entry in entries
    )
    show_all = (
        f'<button class="show-all-btn" data-target="{section_id}">展示全部</button>'
        if len(entries) > SIDEBAR_PREVIEW
        else ""
    )
    return (
        '<div class="sidebar-section">'
        f'<div class="section-title">{title}</div>'
        f'<ul class="sidebar-list" id="{section_id}">{rows}</ul>'
        f"{show_all}"
        "</div>"
    )


def render_toc(toc: list[TocEntry]) -> str:
    if not toc:
        return ""
    rows = "".join(
        f'<li class="level-{item.level}"><a href="#{item.id}">{html.escape(item.text)}</a></li>' for item in toc
    )
    return (
        '<div class="sidebar-section toc-section">'
        '<div class="section-title">跳转</div>'
        f'<ul class="toc-list">{rows}</ul>'
        "</div>"
    )


class LayoutRenderer:
    def __init__(self, config: SiteConfig, template: str | None = None):
        self.config = config
        self.template = template or BASE_TEMPLATE

    @classmethod
    def from_theme(cls, config: SiteConfig, theme_dir: Path) -> LayoutRenderer:
        template_path = theme_dir / "base.html"
        if template_path.exists():
            return cls(config, read_template(template_path))
        return cls(config)

    def extra_head(self) -> str:
        parts = []
        if self.config.custom_background:
            background = html.escape(self.config.custom_background)
            parts.append(
                f"<style>body {{ background-image: url('{background}') !important; "
                "background-size: cover !important; background-attachment: fixed; }</style>"
            )
        if self.config.analytics_enabled and self.config.analytics_src:
            parts.append(f'<script src="{html.escape(self.config.analytics_src)}" defer></script>')
        return "\n  ".join(parts)

    def right_sidebar(self, model: PageModel) -> str:
        root = model.base_url
        copyright_html = (
            f'<aside class="copyright-card">{self.config.copyright}</aside>' if self.config.copyright else ""
        )
        return (
            '<div class="right-column">'
            '<aside class="right-sidebar-card">'
            f'{render_sidebar_section("分类", "sidebar-categories", "categories", model.categories, root)}'
            f'{render_sidebar_section("标签", "sidebar-tags", "tags", model.tags, root)}'
            f"{render_toc(model.toc)}"
            "</aside>"
            f"{copyright_html}"
            "</div>"
        )

    def render_page(self, model: PageModel) -> str:
        nav = "".join(f'<li><a href="{html.escape(item.href)}">{html.escape(item.label)}</a></li>' for item in model.nav)
        return render_template(
            self.template,
            title=html.escape(model.title),
            root=model.base_url,
            extra_head=self.extra_head(),
            profile=render_profile(self.config.profile),
            nav=nav,
            links=render_profile_links(self.config.profile),
            content=model.content,
            sidebar=self.right_sidebar(model),
        )
