"""Tests for the public entry points and the aggregation step."""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import pytest
import requests

from imgsift import extractor
from imgsift.config import ACCEPT_HEADER, DEFAULT_USER_AGENT, ExtractionOptions
from imgsift.extractor import extract_images_from_html, extract_images_from_url, extract_images_from_urls
from imgsift.models import DiagnosticKind, ExtractResult

BASE = "https://x.com/dir/page.html"


def _response(status_code=200, content_type="text/html; charset=utf-8", text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.headers = {"Content-Type": content_type} if content_type else {}
    resp.encoding = "utf-8"
    resp.iter_content.return_value = [text.encode("utf-8")] if text else []
    return resp


def _session(resp=None, side_effect=None):
    session = MagicMock(spec=requests.Session)
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = resp
    return session


class TestExtractImagesFromHtml:
    """Extraction over in-memory HTML."""

    def test_plain_document_has_no_images(self):
        result = extract_images_from_html("<html><body><p>Nothing here</p></body></html>", BASE)
        assert result.urls == []
        assert result.total == 0
        assert result.error is None

    def test_all_passes_contribute(self):
        html = """
        <html><head>
          <meta property="og:image" content="/og.png">
          <style>.hero { background: url('/bg/hero.jpg') }</style>
        </head><body>
          <img src="cover.webp">
          <script>const heroImage = "/static/hero.png";</script>
        </body></html>
        """
        result = extract_images_from_html(html, BASE)
        assert set(result.urls) == {
            "https://x.com/og.png",
            "https://x.com/bg/hero.jpg",
            "https://x.com/dir/cover.webp",
            "https://x.com/static/hero.png",
        }
        assert result.total == 4

    def test_same_url_from_several_passes_appears_once(self):
        html = (
            '<img src="/static/hero.png">'
            '<div style="background:url(https://x.com/static/hero.png)"></div>'
            '<script>document.body.setAttribute("src", "/static/hero.png");</script>'
        )
        result = extract_images_from_html(html, BASE)
        assert result.urls == ["https://x.com/static/hero.png"]

    def test_script_only_image(self):
        html = '<script>el.setAttribute("src", "/icons/logo.svg");</script>'
        assert extract_images_from_html(html, BASE).urls == ["https://x.com/icons/logo.svg"]

    def test_unparseable_script_falls_back_to_regex(self):
        diagnostics = []
        html = '<script>const heroImage = "/static/hero.png" @@@ {{{</script>'
        result = extract_images_from_html(html, BASE, ExtractionOptions(on_diagnostic=diagnostics.append))
        assert result.urls == ["https://x.com/static/hero.png"]
        assert result.error is None
        assert DiagnosticKind.SCRIPT_PARSE_FAILED in [d.kind for d in diagnostics]

    def test_js_extraction_disabled(self):
        html = '<script>var heroImage = "/static/hero.png";</script>'
        result = extract_images_from_html(html, BASE, ExtractionOptions(extract_js_images=False))
        assert result.urls == []

    def test_url_filter_is_final_gate(self):
        html = '<img src="/a.png"><img src="/b.gif"><script>var c = "/c.png";</script>'
        options = ExtractionOptions(url_filter=lambda url: url.endswith(".png"))
        result = extract_images_from_html(html, BASE, options)
        assert set(result.urls) == {"https://x.com/a.png", "https://x.com/c.png"}

    def test_non_image_strings_never_included(self):
        html = '<a href="/api/v1/games?key=abc">x</a><script>fetch("/api/v1/games?key=abc")</script>'
        assert extract_images_from_html(html, BASE).urls == []

    def test_failure_is_reported_not_raised(self):
        def broken_filter(url):
            raise RuntimeError("filter exploded")

        result = extract_images_from_html('<img src="/a.png">', BASE, ExtractionOptions(url_filter=broken_filter))
        assert result.urls == []
        assert result.total == 0
        assert result.error == "filter exploded"


class TestExtractImagesFromUrl:
    """Fetch wrapper behaviour with a stubbed session."""

    def test_success_resolves_against_origin(self):
        session = _session(_response(text='<img src="b.png"><img src="/c.jpg">'))
        result = extract_images_from_url(BASE, session=session)
        assert result.ok
        assert result.urls == ["https://x.com/b.png", "https://x.com/c.jpg"]

    def test_request_headers_and_timeout(self):
        session = _session(_response(text=""))
        extract_images_from_url(BASE, ExtractionOptions(timeout=2500), session=session)
        _, kwargs = session.get.call_args
        assert kwargs["headers"] == {"User-Agent": DEFAULT_USER_AGENT, "Accept": ACCEPT_HEADER}
        assert kwargs["timeout"] == 2.5
        assert kwargs["stream"] is True

    def test_custom_user_agent(self):
        session = _session(_response(text=""))
        extract_images_from_url(BASE, ExtractionOptions(user_agent="ArtBot/1.0"), session=session)
        assert session.get.call_args.kwargs["headers"]["User-Agent"] == "ArtBot/1.0"

    def test_rejects_non_http_url(self):
        session = _session(_response())
        result = extract_images_from_url("ftp://x.com/page", session=session)
        assert result.urls == []
        assert "ftp://x.com/page" in result.error
        session.get.assert_not_called()

    def test_timeout_is_reported_distinctly(self):
        session = _session(side_effect=requests.Timeout("read timed out"))
        result = extract_images_from_url(BASE, session=session)
        assert result.total == 0
        assert result.error == f"Failed to extract images from URL [{BASE}]: request timed out"

    def test_connection_error(self):
        session = _session(side_effect=requests.ConnectionError("refused"))
        result = extract_images_from_url(BASE, session=session)
        assert "refused" in result.error
        assert "timed out" not in result.error

    def test_http_error_status(self):
        result = extract_images_from_url(BASE, session=_session(_response(status_code=404)))
        assert result.urls == []
        assert "HTTP error! status: 404" in result.error

    def test_response_closed_after_rejection(self):
        resp = _response(status_code=503)
        extract_images_from_url(BASE, session=_session(resp))
        resp.close.assert_called_once()
        resp.iter_content.assert_not_called()

    def test_body_charset_is_respected(self):
        resp = _response()
        resp.encoding = "latin-1"
        resp.iter_content.return_value = ["<img src=\"caf\u00e9.png\">".encode("latin-1")]
        result = extract_images_from_url(BASE, session=_session(resp))
        assert result.urls == ["https://x.com/caf\u00e9.png"]

    @pytest.mark.parametrize("content_type", ["application/json", None])
    def test_wrong_content_type(self, content_type):
        result = extract_images_from_url(BASE, session=_session(_response(content_type=content_type)))
        assert result.urls == []
        assert "unsupported content type" in result.error

    def test_fetch_failure_emits_diagnostic(self):
        diagnostics = []
        options = ExtractionOptions(on_diagnostic=diagnostics.append)
        extract_images_from_url(BASE, options, session=_session(_response(status_code=500)))
        assert [d.kind for d in diagnostics] == [DiagnosticKind.FETCH_FAILED]
        assert diagnostics[0].source == BASE

    def test_owned_session_is_closed(self, monkeypatch):
        session = _session(_response(text=""))
        monkeypatch.setattr(extractor.requests, "Session", lambda: session)
        extract_images_from_url(BASE)
        session.close.assert_called_once()


class _DripHandler(BaseHTTPRequestHandler):
    """Serves a page one byte at a time, ``delay`` seconds apart."""

    body = b'<html><body><img src="/static/late.png"></body></html>'
    delay = 0.0

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        try:
            for index in range(len(self.body)):
                self.wfile.write(self.body[index : index + 1])
                self.wfile.flush()
                if self.delay:
                    time.sleep(self.delay)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def page_server():
    servers = []

    def start(delay):
        handler = type("Handler", (_DripHandler,), {"delay": delay})
        server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
        server.daemon_threads = True
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}/page.html"

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.fixture
def direct_session():
    session = requests.Session()
    session.trust_env = False  # ignore proxy settings for loopback
    yield session
    session.close()


class TestFetchDeadline:
    """The timeout bounds the whole request, not each socket read."""

    def test_trickling_body_is_cut_off(self, page_server, direct_session):
        url = page_server(delay=0.2)
        started = time.monotonic()
        result = extract_images_from_url(url, ExtractionOptions(timeout=500), session=direct_session)
        elapsed = time.monotonic() - started
        assert result.urls == []
        assert result.error == f"Failed to extract images from URL [{url}]: request timed out"
        assert elapsed < 2.0

    def test_prompt_body_is_read(self, page_server, direct_session):
        url = page_server(delay=0.0)
        result = extract_images_from_url(url, ExtractionOptions(timeout=5000), session=direct_session)
        assert result.ok
        assert result.urls == [url.rsplit("/", 1)[0] + "/static/late.png"]


class TestExtractImagesFromUrls:
    def test_results_keep_input_order(self, monkeypatch):
        def fake_extract(url, options=None):
            return ExtractResult(urls=[url + "/a.png"])

        monkeypatch.setattr(extractor, "extract_images_from_url", fake_extract)
        pages = ["https://a.com", "https://b.com", "https://a.com", "https://c.com"]
        results = extract_images_from_urls(pages, max_workers=2)
        assert list(results) == ["https://a.com", "https://b.com", "https://c.com"]
        assert results["https://b.com"].urls == ["https://b.com/a.png"]

    def test_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            extract_images_from_urls(["https://a.com"], max_workers=0)


class TestExtractResult:
    def test_to_dict(self):
        assert ExtractResult(urls=["u"]).to_dict() == {"urls": ["u"], "total": 1}
        assert ExtractResult(error="boom").to_dict() == {"urls": [], "total": 0, "error": "boom"}


class TestMalformedHosts:
    def test_host_with_space_never_reaches_results(self):
        html = '<img src="https://exa mple.com/a.png"><img src="https://x.com/b.png">'
        assert extract_images_from_html(html, BASE).urls == ["https://x.com/b.png"]
