import json

import httpx
import pytest

from hozokura.pipeline import ProjectPaths, run_build
from hozokura.utils import BuildError


def read(path):
    return path.read_text(encoding="utf-8")


@pytest.fixture
def site(tmp_path, write_post):
    write_post(
        "hello-world.md",
        "---\ntitle: Hello World\ndate: 2025-02-01\ntags: [Python, Web]\ncategories: [笔记]\n---\n\n## 开始\n\n正文\n",
    )
    write_post("second.md", "---\ntitle: Second\ndate: 2025-01-01\ntags: python\n---\n\nMore\n")
    theme = tmp_path / "theme"
    theme.mkdir()
    (theme / "style.css").write_text("body {}", encoding="utf-8")
    return ProjectPaths.from_root(tmp_path)


class TestRunBuild:
    """Test for a complete build of a small site."""

    def test_page_count_and_layout(self, site, now):
        """Test: Every route is written and counted."""
        result = run_build(site, environ={}, now=now)
        dist = site.output_dir

        # 2 posts + 2 tags + 1 category + home, articles, two indexes and random
        assert result.pages == 2 + 2 + 1 + 5
        for route in (
            "",
            "articles",
            "tags",
            "categories",
            "random",
            "posts/hello-world",
            "posts/second",
            "tags/python",
            "tags/web",
            "categories/笔记",
        ):
            assert (dist / route / "index.html").exists(), route
        assert (dist / "assets" / "style.css").exists()
        assert ".codehilite" in read(dist / "assets" / "pygments.css")
        assert result.sync is None

    def test_post_page(self, site, now):
        """Test: Post pages carry the body, chips and the table of contents."""
        run_build(site, environ={}, now=now)
        page = read(site.output_dir / "posts" / "hello-world" / "index.html")
        assert "<title>Hello World</title>" in page
        assert '<h2 id="开始">开始</h2>' in page
        assert 'href="#开始"' in page
        assert 'href="/tags/python/"' in page
        assert 'href="/categories/笔记/"' in page

    def test_taxonomy_page_lists_members(self, site, now):
        """Test: A tag page lists every document with that tag."""
        run_build(site, environ={}, now=now)
        page = read(site.output_dir / "tags" / "python" / "index.html")
        assert page.index("/posts/hello-world/") < page.index("/posts/second/")

    def test_default_config_written(self, site, now):
        """Test: The first build creates a default config file."""
        run_build(site, environ={}, now=now)
        assert json.loads(read(site.config_path))["baseUrl"] == "/"

    def test_base_url(self, site, now):
        """Test: Links are prefixed with the configured base path."""
        site.config_path.write_text(json.dumps({"baseUrl": "/blog"}), encoding="utf-8")
        run_build(site, environ={}, now=now)
        page = read(site.output_dir / "articles" / "index.html")
        assert 'href="/blog/posts/hello-world/"' in page
        assert 'href="/blog/assets/style.css"' in page

    def test_deterministic(self, site, now):
        """Test: Two builds from the same input produce identical output."""
        run_build(site, environ={}, now=now)
        first = {p.relative_to(site.output_dir): p.read_bytes() for p in site.output_dir.rglob("*") if p.is_file()}
        run_build(site, environ={}, now=now)
        second = {p.relative_to(site.output_dir): p.read_bytes() for p in site.output_dir.rglob("*") if p.is_file()}
        assert first == second

    def test_stale_output_removed(self, site, now):
        """Test: Files from earlier builds do not survive a rebuild."""
        stale = site.output_dir / "posts" / "gone" / "index.html"
        stale.parent.mkdir(parents=True)
        stale.write_text("old", encoding="utf-8")
        run_build(site, environ={}, now=now)
        assert not stale.exists()

    def test_short_link_shown(self, site, now):
        """Test: Synced short links appear on the post page when enabled."""
        site.config_path.write_text(
            json.dumps({"siteUrl": "https://blog.example", "services": {"shortLink": {"enabled": True}}}),
            encoding="utf-8",
        )
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"slug": json.loads(request.content)["slug"]})
        )
        env = {"SINK_API_URL": "https://sink.example", "SINK_API_KEY": "k"}
        with httpx.Client(transport=transport) as client:
            result = run_build(site, environ=env, client=client, now=now)
        assert result.sync.created == ["hello-world", "second"]
        page = read(site.output_dir / "posts" / "hello-world" / "index.html")
        assert 'href="https://sink.example/hello-world"' in page

    def test_long_link_without_short_links(self, site, now):
        """Test: Without short links the post shows its full URL."""
        site.config_path.write_text(json.dumps({"siteUrl": "https://blog.example"}), encoding="utf-8")
        run_build(site, environ={}, now=now)
        page = read(site.output_dir / "posts" / "second" / "index.html")
        assert 'data-copy="https://blog.example/posts/second/"' in page

    def test_refuses_output_at_root(self, tmp_path, now):
        """Test: Building into the project root is refused."""
        paths = ProjectPaths.from_root(tmp_path, output=tmp_path)
        with pytest.raises(BuildError):
            run_build(paths, environ={}, now=now)


class TestEmptySite:
    def test_random_redirects_home(self, tmp_path, now):
        """Test: With no posts the random page sends visitors to the root."""
        result = run_build(ProjectPaths.from_root(tmp_path), environ={}, now=now)
        assert result.pages == 5
        page = read(tmp_path / "dist" / "random" / "index.html")
        assert "const posts = [];" in page
        assert 'window.location.href = "/";' in page
        assert "写下你的第一篇文章吧" in read(tmp_path / "dist" / "index.html")

    def test_home_page_from_markdown(self, tmp_path, now):
        """Test: content/home.md is rendered on the home page."""
        (tmp_path / "content").mkdir()
        (tmp_path / "content" / "home.md").write_text("::: success\n欢迎\n:::", encoding="utf-8")
        run_build(ProjectPaths.from_root(tmp_path), environ={}, now=now)
        assert '<div class="admonition success">' in read(tmp_path / "dist" / "index.html")
