"""URL normalization and image heuristics shared by every extraction pass."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple
from urllib.parse import urlsplit

from .models import Diagnostic, DiagnosticKind

logger = logging.getLogger("imgsift")

DiagnosticSink = Callable[[Diagnostic], None]

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg", ".ico", ".avif")
IMAGE_PATH_PATTERNS = ("/images/", "/img/", "/assets/", "/static/", "image=", "img=")
_FORBIDDEN_HOST_CHARS = frozenset("<>^|%\"`{}\\#/?@")

# Lowercase substrings; an identifier is image-related if it contains any of them.
IMAGE_KEY_TABLE = frozenset(
    {
        "src",
        "url",
        "image",
        "img",
        "background",
        "bg",
        "picture",
        "photo",
        "icon",
        "avatar",
        "logo",
        "backgroundimage",
        "srcset",
        "datasrc",
        "dataurl",
    }
)


def emit_diagnostic(sink: Optional[DiagnosticSink], diagnostic: Diagnostic) -> None:
    """Hand a diagnostic to the caller's sink, or log it when none is installed."""
    if sink is not None:
        sink(diagnostic)
        return
    level = logging.DEBUG if diagnostic.kind is DiagnosticKind.NORMALIZE_FAILED else logging.WARNING
    if diagnostic.source:
        logger.log(level, "%s (%s)", diagnostic.message, diagnostic.source)
    else:
        logger.log(level, "%s", diagnostic.message)


def is_image_related_key(name: str) -> bool:
    """Return True when an identifier or attribute name looks image-related."""
    if not name:
        return False
    lowered = name.lower()
    return any(key in lowered for key in IMAGE_KEY_TABLE)


def looks_like_image(url: str) -> bool:
    """Cheap heuristic: does this string reference an image?

    Extensions are matched anywhere in the string, query included, so
    ``/thumb?f=cover.png&w=200`` passes. Data URIs only pass with an
    ``image/`` media type.
    """
    if not url:
        return False
    if url.startswith("data:"):
        return url.startswith("data:image/")
    lowered = url.lower()
    if any(ext in lowered for ext in IMAGE_EXTENSIONS):
        return True
    return any(pattern in lowered for pattern in IMAGE_PATH_PATTERNS)


def _split_base(base_url: str) -> Tuple[str, str]:
    """Return ``(origin, directory)`` for a base URL or raise ValueError."""
    parts = urlsplit(base_url.strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"base URL is not absolute: {base_url!r}")
    host = parts.netloc.rpartition("@")[2]
    origin = f"{parts.scheme}://{host}"
    path = parts.path or "/"
    directory = path[: path.rfind("/") + 1]
    return origin, directory


def _is_valid_host(hostname: str) -> bool:
    if any(ch.isspace() or ch in _FORBIDDEN_HOST_CHARS for ch in hostname):
        return False
    try:
        hostname.encode("idna")
    except UnicodeError:
        return False
    return True


def is_well_formed(url: str) -> bool:
    """Return True if ``url`` parses as an absolute URL with a host."""
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    if any(ch in url for ch in "\r\n\t"):
        return False
    if not parts.scheme or not parts.hostname:
        return False
    return _is_valid_host(parts.hostname)


def normalize_url(
    url: str,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> str:
    """Resolve ``url`` against ``base_url``.

    Returns the absolute URL, or an empty string when the value cannot be
    used (blank, an in-page anchor, a ``javascript:`` link, or anything
    that does not resolve to a well-formed absolute URL). Data URIs are
    passed through untouched. Never raises.
    """
    if not url or not url.strip():
        return ""
    full_url = url.strip()

    if full_url.startswith("data:"):
        return full_url
    if full_url.startswith("#") or full_url.lower().startswith("javascript:"):
        return ""

    try:
        if full_url.startswith("//"):
            full_url = f"https:{full_url}"
        elif full_url.startswith("/"):
            origin, _ = _split_base(base_url)
            full_url = f"{origin}{full_url}"
        elif not full_url.startswith("http"):
            origin, directory = _split_base(base_url)
            full_url = f"{origin}{directory}{full_url}"
    except ValueError as exc:
        emit_diagnostic(
            on_diagnostic,
            Diagnostic(DiagnosticKind.NORMALIZE_FAILED, f"Could not normalize URL: {exc}", url),
        )
        return ""

    if not is_well_formed(full_url):
        emit_diagnostic(
            on_diagnostic,
            Diagnostic(DiagnosticKind.NORMALIZE_FAILED, "Could not normalize URL", url),
        )
        return ""
    return full_url


def resolve_candidate(
    raw: str,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> str:
    """Normalize a raw candidate and keep it only if it still looks like an image."""
    full_url = normalize_url(raw, base_url, on_diagnostic)
    if full_url and looks_like_image(full_url):
        return full_url
    return ""
