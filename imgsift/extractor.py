"""High-level entry points: extract image URLs from HTML text or a live page."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import requests
import urllib3

from .config import ACCEPT_HEADER, ExtractionOptions
from .content import extract_dom_images, parse_html
from .models import Diagnostic, DiagnosticKind, ExtractResult
from .scripts import extract_script_images
from .utils import emit_diagnostic, looks_like_image

logger = logging.getLogger("imgsift")

_CHUNK_SIZE = 16 * 1024


class FetchError(Exception):
    """Raised internally when a page cannot be retrieved as HTML."""


def _aggregate(candidate_groups: Iterable[Iterable[str]], options: ExtractionOptions) -> List[str]:
    """Merge pass outputs into one ordered, deduplicated, policy-filtered list."""
    seen: Dict[str, None] = {}
    for group in candidate_groups:
        for url in group:
            if url in seen or not looks_like_image(url):
                continue
            if options.url_filter(url):
                seen[url] = None
    return list(seen)


def extract_images_from_html(
    html: str,
    base_url: str,
    options: Optional[ExtractionOptions] = None,
) -> ExtractResult:
    """Discover image URLs in ``html``, resolving relative references against ``base_url``.

    Never raises: a failure of the whole pipeline is reported through
    ``ExtractResult.error`` with an empty URL list.
    """
    options = options or ExtractionOptions()
    try:
        soup = parse_html(html)
        groups: List[List[str]] = [extract_dom_images(soup, base_url, options)]
        if options.extract_js_images:
            groups.append(extract_script_images(soup, base_url, options.on_diagnostic))
        urls = _aggregate(groups, options)
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Image extraction failed for %s", base_url)
        return ExtractResult(urls=[], error=str(exc) or exc.__class__.__name__)
    logger.debug("Found %d image URL(s) in document at %s", len(urls), base_url)
    return ExtractResult(urls=urls)


def _decode_body(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def fetch_html(url: str, options: ExtractionOptions, session: requests.Session) -> str:
    """GET ``url`` and return its body, insisting on a 2xx ``text/html`` response.

    The whole exchange, body included, must finish within ``options.timeout``.
    When the deadline passes a watchdog shuts the socket down, so a server
    trickling bytes cannot hold the read open.
    """
    if not url.startswith("http"):
        raise FetchError("URL must start with http:// or https://")
    headers = {"User-Agent": options.user_agent, "Accept": ACCEPT_HEADER}
    deadline = time.monotonic() + options.timeout_seconds
    try:
        resp = session.get(url, headers=headers, timeout=options.timeout_seconds, stream=True)
    except requests.Timeout as exc:
        raise FetchError("request timed out") from exc
    except requests.RequestException as exc:
        raise FetchError(str(exc)) from exc

    try:
        if not 200 <= resp.status_code < 300:
            raise FetchError(f"HTTP error! status: {resp.status_code}")
        content_type = resp.headers.get("Content-Type")
        if not content_type or "text/html" not in content_type:
            raise FetchError(f"unsupported content type: {content_type}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchError("request timed out")
        expired = threading.Event()

        def abort() -> None:
            expired.set()
            resp.raw.shutdown()

        watchdog = threading.Timer(remaining, abort)
        watchdog.daemon = True
        watchdog.start()
        chunks: List[bytes] = []
        try:
            for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                if expired.is_set() or time.monotonic() >= deadline:
                    raise FetchError("request timed out")
                chunks.append(chunk)
        except (requests.RequestException, urllib3.exceptions.HTTPError, OSError) as exc:
            if expired.is_set():
                raise FetchError("request timed out") from exc
            raise FetchError(str(exc)) from exc
        finally:
            watchdog.cancel()
        if expired.is_set():
            raise FetchError("request timed out")
        return _decode_body(b"".join(chunks), resp.encoding)
    finally:
        resp.close()


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}"


def extract_images_from_url(
    url: str,
    options: Optional[ExtractionOptions] = None,
    session: Optional[requests.Session] = None,
) -> ExtractResult:
    """Fetch a page and extract its images, resolving against the page's origin."""
    options = options or ExtractionOptions()
    owns_session = session is None
    if owns_session:
        session = requests.Session()
    try:
        logger.info("Loading %s", url)
        html = fetch_html(url, options, session)
    except FetchError as exc:
        emit_diagnostic(
            options.on_diagnostic,
            Diagnostic(DiagnosticKind.FETCH_FAILED, str(exc), url),
        )
        return ExtractResult(
            urls=[],
            error=f"Failed to extract images from URL [{url}]: {exc}",
        )
    finally:
        if owns_session:
            session.close()
    return extract_images_from_html(html, _origin(url), options)


def extract_images_from_urls(
    urls: List[str],
    options: Optional[ExtractionOptions] = None,
    max_workers: int = 4,
) -> Dict[str, ExtractResult]:
    """Extract several pages on a bounded thread pool; results keep input order."""
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")
    unique_urls = list(dict.fromkeys(urls))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = pool.map(lambda page_url: extract_images_from_url(page_url, options), unique_urls)
        return dict(zip(unique_urls, results))
