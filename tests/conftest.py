import datetime as dt
from pathlib import Path

import pytest

from hozokura.markup import MarkdownTransformer

FIXED_NOW = dt.datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def transformer():
    return MarkdownTransformer()


@pytest.fixture
def write_post(tmp_path):
    posts_dir = tmp_path / "content" / "posts"
    posts_dir.mkdir(parents=True, exist_ok=True)

    def write(name: str, text: str) -> Path:
        path = posts_dir / name
        path.write_text(text, encoding="utf-8")
        return path

    return write
