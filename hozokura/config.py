from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

try:
    import tomllib as toml
except ImportError:  # pragma: no cover - Python < 3.11
    import tomli as toml

from .render import write_text
from .utils import HozokuraError, normalize_base, parse_bool

logger = logging.getLogger(__name__)

CONFIG_NAME = "site.config.json"
DEFAULT_HIDE_TIP = "点击查看"
DEFAULT_CONFIG: dict[str, Any] = {
    "baseUrl": "/",
    "profile": {
        "name": "博主名字",
        "tagline": "关于你的Tag",
        "bio": "这里是你的个人介绍，可以写一些关于你自己的话。",
        "location": "某个角落",
        "avatar": "",
        "links": [{"label": "主页", "href": "/"}],
    },
    "copyright": "© 2026 博主名字",
}


class ConfigError(HozokuraError):
    pass


@dataclass(frozen=True)
class SiteConfig:
    base_url: str = "/"
    site_url: str = ""
    profile: dict = field(default_factory=dict)
    copyright: str = ""
    short_link_enabled: bool = False
    short_link_url: str = ""
    analytics_enabled: bool = False
    analytics_src: str = ""
    hide_tip: str = DEFAULT_HIDE_TIP
    custom_background: str = ""
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SiteConfig:
        services = data.get("services") or {}
        short_link = services.get("shortLink") or {}
        analytics = services.get("analytics") or {}
        theme = data.get("theme") or {}
        return cls(
            base_url=normalize_base(str(data.get("baseUrl") or "/")),
            site_url=str(data.get("siteUrl") or "").strip(),
            profile=dict(data.get("profile") or {}),
            copyright=str(data.get("copyright") or ""),
            short_link_enabled=parse_bool(short_link.get("enabled")),
            short_link_url=str(short_link.get("url") or "").strip(),
            analytics_enabled=parse_bool(analytics.get("enabled")),
            analytics_src=str(analytics.get("src") or "").strip(),
            hide_tip=str(theme.get("hideTip") or DEFAULT_HIDE_TIP),
            custom_background=str(theme.get("customBackground") or "").strip(),
            raw=dict(data),
        )


def load_config(path: Path) -> dict:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            return {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    return data


def merge_defaults(data: Mapping[str, Any]) -> dict:
    merged = {**copy.deepcopy(DEFAULT_CONFIG), **data}
    merged["profile"] = {**DEFAULT_CONFIG["profile"], **(data.get("profile") or {})}
    return merged


def load_site_config(path: Path, environ: Mapping[str, str] | None = None) -> SiteConfig:
    environ = os.environ if environ is None else environ
    if not path.exists():
        logger.info("Config file %s not found, writing defaults", path)
        write_text(path, json.dumps(DEFAULT_CONFIG, indent=2, ensure_ascii=False))
        return SiteConfig.from_mapping(copy.deepcopy(DEFAULT_CONFIG))

    data = load_config(path)
    sink_url = (environ.get("SINK_API_URL") or "").strip()
    services = data.get("services")
    if sink_url and isinstance(services, dict) and isinstance(services.get("shortLink"), dict):
        services["shortLink"]["url"] = sink_url
    return SiteConfig.from_mapping(merge_defaults(data))
