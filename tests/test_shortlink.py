import json

import httpx
import pytest

from hozokura.config import SiteConfig
from hozokura.content import load_documents
from hozokura.shortlink import extract_short_link, sync_short_links

SINK = "https://sink.example"
ENV = {"SINK_API_URL": SINK, "SINK_API_KEY": "secret"}
CONFIG = SiteConfig(site_url="https://blog.example", base_url="/")


class Recorder:
    """Mock Sink endpoint that replays canned responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def posts(tmp_path, write_post):
    write_post("hello-world.md", "---\ntitle: Hello\ndate: 2025-02-01\n---\nHi\n")
    write_post("second.md", "---\ntitle: Second\ndate: 2025-01-01\n---\nMore\n")
    return tmp_path / "content" / "posts"


class TestExtractShortLink:
    """Test for reading the short link out of a Sink response."""

    @pytest.mark.parametrize(
        "data, expected",
        [
            ({"link": "https://s.example/a", "url": "https://ignored"}, "https://s.example/a"),
            ({"shortLink": "https://s.example/b"}, "https://s.example/b"),
            ({"shortUrl": "https://s.example/c"}, "https://s.example/c"),
            ({"url": "https://s.example/d"}, "https://s.example/d"),
            ({"slug": "e"}, f"{SINK}/e"),
            ({"other": 1}, None),
            (["not", "a", "mapping"], None),
        ],
    )
    def test_shapes(self, data, expected):
        """Test: Known response shapes are checked in priority order."""
        assert extract_short_link(data, SINK) == expected


class TestSyncShortLinks:
    """Test for the short link synchronization pass."""

    def test_creates_and_persists(self, posts, transformer, now):
        """Test: Missing links are requested and written back to the sources."""
        recorder = Recorder(
            httpx.Response(200, json={"link": "https://s.example/h"}),
            httpx.Response(200, json={"shortLink": "https://s.example/s"}),
        )
        docs = load_documents(posts, transformer, now)
        with recorder.client() as client:
            report = sync_short_links(docs, CONFIG, ENV, client=client)

        assert report.created == ["hello-world", "second"]
        first = recorder.requests[0]
        assert str(first.url) == f"{SINK}/api/link/create"
        assert first.headers["Authorization"] == "Bearer secret"
        assert json.loads(first.content) == {"url": "https://blog.example/posts/hello-world/", "slug": "hello-world"}
        assert "shortLink: https://s.example/h" in (posts / "hello-world.md").read_text(encoding="utf-8")
        assert "shortLink: https://s.example/s" in (posts / "second.md").read_text(encoding="utf-8")

    def test_second_run_makes_no_requests(self, posts, transformer, now):
        """Test: Documents that already have a link are skipped."""
        recorder = Recorder(httpx.Response(200, json={"link": "https://s.example/x"}))
        with recorder.client() as client:
            sync_short_links(load_documents(posts, transformer, now), CONFIG, ENV, client=client)
            count = len(recorder.requests)
            report = sync_short_links(load_documents(posts, transformer, now), CONFIG, ENV, client=client)

        assert count == 2
        assert len(recorder.requests) == 2
        assert report.skipped == ["hello-world", "second"]

    def test_conflict_uses_constructed_link(self, posts, transformer, now):
        """Test: A 409 answer means the slug exists, so the link is built from it."""
        recorder = Recorder(httpx.Response(409, json={"message": "exists"}))
        docs = load_documents(posts, transformer, now)
        with recorder.client() as client:
            report = sync_short_links(docs, CONFIG, ENV, client=client)

        assert report.conflicts == ["hello-world", "second"]
        assert docs[0].short_link == f"{SINK}/hello-world"
        assert f"shortLink: {SINK}/hello-world" in (posts / "hello-world.md").read_text(encoding="utf-8")

    def test_failure_does_not_stop_the_pass(self, posts, transformer, now):
        """Test: One failed request is logged and the next document still syncs."""
        recorder = Recorder(
            httpx.Response(500, text="boom"),
            httpx.Response(200, json={"url": "https://s.example/2"}),
        )
        before = (posts / "hello-world.md").read_text(encoding="utf-8")
        docs = load_documents(posts, transformer, now)
        with recorder.client() as client:
            report = sync_short_links(docs, CONFIG, ENV, client=client)

        assert report.failed == ["hello-world"]
        assert report.created == ["second"]
        assert (posts / "hello-world.md").read_text(encoding="utf-8") == before

    def test_transport_error(self, posts, transformer, now):
        """Test: Network errors count as failures."""
        recorder = Recorder(httpx.ConnectError("refused"))
        with recorder.client() as client:
            report = sync_short_links(load_documents(posts, transformer, now), CONFIG, ENV, client=client)
        assert report.failed == ["hello-world", "second"]

    def test_unparseable_response(self, posts, transformer, now):
        """Test: A success without a usable link leaves the source untouched."""
        recorder = Recorder(httpx.Response(200, text="not json"), httpx.Response(200, json={"other": 1}))
        docs = load_documents(posts, transformer, now)
        with recorder.client() as client:
            report = sync_short_links(docs, CONFIG, ENV, client=client)
        assert report.failed == ["hello-world", "second"]
        assert "shortLink" not in (posts / "second.md").read_text(encoding="utf-8")

    def test_non_string_link_is_resynced(self, tmp_path, write_post, transformer, now):
        """Test: A stored response object is replaced with a plain link."""
        path = write_post("legacy.md", "---\ntitle: Legacy\nshortLink:\n  link: https://old\n---\nBody\n")
        recorder = Recorder(httpx.Response(200, json={"link": "https://s.example/l"}))
        docs = load_documents(path.parent, transformer, now)
        with recorder.client() as client:
            report = sync_short_links(docs, CONFIG, ENV, client=client)
        assert report.created == ["legacy"]
        assert "shortLink: https://s.example/l" in path.read_text(encoding="utf-8")

    @pytest.mark.parametrize(
        "environ, config",
        [
            ({"SINK_API_URL": SINK}, CONFIG),
            ({"SINK_API_KEY": "secret"}, CONFIG),
            (ENV, SiteConfig(site_url="")),
        ],
    )
    def test_preconditions(self, posts, transformer, now, environ, config):
        """Test: Sync is skipped without a service URL, a key and a site URL."""
        recorder = Recorder(httpx.Response(200, json={"link": "https://s.example/x"}))
        with recorder.client() as client:
            report = sync_short_links(load_documents(posts, transformer, now), config, environ, client=client)
        assert report is None
        assert recorder.requests == []

    def test_service_url_from_config(self, posts, transformer, now):
        """Test: The configured service URL is used when the environment has none."""
        config = SiteConfig(site_url="https://blog.example", short_link_url="https://cfg.example")
        recorder = Recorder(httpx.Response(200, json={"link": "https://s.example/x"}))
        with recorder.client() as client:
            sync_short_links(load_documents(posts, transformer, now), config, {"SINK_API_KEY": "k"}, client=client)
        assert str(recorder.requests[0].url) == "https://cfg.example/api/link/create"
