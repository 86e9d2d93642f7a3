"""Image discovery inside inline ``<script>`` code.

Two strategies run over every script body. The regex pass works on raw
text and tolerates minified or broken code. The syntax-tree pass parses
the code with esprima and looks at literals, image-related property
names, and ``setAttribute``/``require`` calls. A parse failure only
silences the second pass for that block.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterator, List, Optional

import esprima
from bs4 import BeautifulSoup

from .models import Diagnostic, DiagnosticKind
from .utils import DiagnosticSink, emit_diagnostic, is_image_related_key, looks_like_image, resolve_candidate

_EXT = r"(?:jpg|jpeg|png|gif|webp|bmp|svg|ico|avif)"
_URL_CHAR = r"""[^\s"'<>{}()]"""
_QUOTED_CHAR = r"""[^\s"'`<>{}()]"""
_QUOTE = r"""['"`]"""

SCRIPT_URL_PATTERNS = (
    # absolute URLs
    re.compile(r"(https?://" + _URL_CHAR + r"+\." + _EXT + r")(?!\w)", re.IGNORECASE),
    re.compile(
        r"(https?://" + _URL_CHAR + r"*/" + _URL_CHAR + r"*\." + _EXT + r"(?:\?" + _URL_CHAR + r"*)?)",
        re.IGNORECASE,
    ),
    # quoted relative paths
    re.compile(_QUOTE + r"(\.\.?/" + _QUOTED_CHAR + r"*\." + _EXT + r")" + _QUOTE, re.IGNORECASE),
    re.compile(_QUOTE + r"(/" + _QUOTED_CHAR + r"*\." + _EXT + r")" + _QUOTE, re.IGNORECASE),
    re.compile(
        _QUOTE
        + r"("
        + _QUOTED_CHAR
        + r"*/(?:images?|img|assets|static)/"
        + _QUOTED_CHAR
        + r"*\."
        + _EXT
        + r")"
        + _QUOTE,
        re.IGNORECASE,
    ),
    # key: value / key = value configuration
    re.compile(
        r"(?:src|url|image|img|background|bg)\s*[:=]\s*" + _QUOTE + r"(" + _QUOTED_CHAR + r"+\." + _EXT + r")" + _QUOTE,
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:images?|pictures?|photos?)\s*:\s*\[[^\]]*" + _QUOTE + r"(" + _QUOTED_CHAR + r"+\." + _EXT + r")" + _QUOTE,
        re.IGNORECASE,
    ),
    # inline base64 images, whole match
    re.compile(r"data:image/(?:png|jpg|jpeg|gif|webp|bmp|avif|svg\+xml);base64,[A-Za-z0-9+/=]+", re.IGNORECASE),
)

SET_ATTRIBUTE_METHODS = frozenset({"setAttribute"})
MODULE_LOADERS = frozenset({"require", "import"})


def iter_regex_candidates(code: str) -> Iterator[str]:
    """Yield raw image-looking substrings matched by the regex battery."""
    for pattern in SCRIPT_URL_PATTERNS:
        for match in pattern.finditer(code):
            candidate = match.group(1) if pattern.groups else match.group(0)
            if candidate and looks_like_image(candidate):
                yield candidate


def extract_with_regex(
    code: str,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> List[str]:
    """Resolved, deduplicated matches of the regex battery."""
    found: Dict[str, None] = {}
    for candidate in iter_regex_candidates(code):
        full_url = resolve_candidate(candidate, base_url, on_diagnostic)
        if full_url:
            found[full_url] = None
    return list(found)


def _field(node: Any, name: str) -> Any:
    return getattr(node, name, None)


def _string_value(node: Any) -> Optional[str]:
    """Return the value of a string literal node, or None for anything else."""
    if _field(node, "type") != "Literal":
        return None
    value = _field(node, "value")
    return value if isinstance(value, str) else None


def _identifier_name(node: Any) -> Optional[str]:
    if _field(node, "type") != "Identifier":
        return None
    return _field(node, "name")


def _call_candidates(node: Any) -> Iterator[str]:
    callee = _field(node, "callee")
    args = _field(node, "arguments") or []

    if _field(callee, "type") == "MemberExpression":
        method = _identifier_name(_field(callee, "property"))
        if method in SET_ATTRIBUTE_METHODS and len(args) >= 2:
            attribute = _string_value(args[0])
            value = _string_value(args[1])
            if attribute is not None and value is not None and is_image_related_key(attribute):
                yield value

    loader = _identifier_name(callee)
    if loader in MODULE_LOADERS or _field(callee, "type") == "Import":
        if len(args) == 1:
            module_path = _string_value(args[0])
            if module_path is not None:
                yield module_path


def iter_node_candidates(node: Any) -> Iterator[str]:
    """Yield raw candidate strings contributed by a single syntax-tree node."""
    node_type = _field(node, "type")

    if node_type == "Literal":
        value = _string_value(node)
        if value is not None:
            yield value
    elif node_type == "TemplateLiteral":
        for quasi in _field(node, "quasis") or []:
            raw = _field(_field(quasi, "value"), "raw")
            if raw:
                yield raw
    elif node_type == "Property":
        key = _identifier_name(_field(node, "key"))
        value = _string_value(_field(node, "value"))
        if key and value is not None and is_image_related_key(key):
            yield value
    elif node_type == "VariableDeclarator":
        name = _identifier_name(_field(node, "id"))
        value = _string_value(_field(node, "init"))
        if name and value is not None and is_image_related_key(name):
            yield value
    elif node_type == "AssignmentExpression":
        left = _field(node, "left")
        if _field(left, "type") == "MemberExpression":
            prop = _identifier_name(_field(left, "property"))
            value = _string_value(_field(node, "right"))
            if prop and value is not None and is_image_related_key(prop):
                yield value
    elif node_type == "CallExpression":
        yield from _call_candidates(node)


def parse_script_nodes(code: str) -> List[Any]:
    """Parse ``code`` as a JSX-enabled module and return every node built."""
    nodes: List[Any] = []

    def collect(node, metadata):
        nodes.append(node)

    esprima.parseModule(code, {"jsx": True}, collect)
    return nodes


def extract_with_syntax_tree(
    code: str,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> List[str]:
    try:
        nodes = parse_script_nodes(code)
    except Exception as exc:  # noqa: BLE001
        emit_diagnostic(
            on_diagnostic,
            Diagnostic(
                DiagnosticKind.SCRIPT_PARSE_FAILED,
                f"Script parse failed, using regex matches only: {exc}",
            ),
        )
        return []

    found: Dict[str, None] = {}
    for node in nodes:
        for candidate in iter_node_candidates(node):
            if not looks_like_image(candidate):
                continue
            full_url = resolve_candidate(candidate, base_url, on_diagnostic)
            if full_url:
                found[full_url] = None
    return list(found)


def extract_images_from_script(
    code: str,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> List[str]:
    """Union of the regex and syntax-tree passes for one script body, deduplicated."""
    found = dict.fromkeys(extract_with_regex(code, base_url, on_diagnostic))
    found.update(dict.fromkeys(extract_with_syntax_tree(code, base_url, on_diagnostic)))
    return list(found)


def iter_inline_scripts(soup: BeautifulSoup) -> Iterator[str]:
    """Yield the bodies of inline scripts, skipping empty and external ones."""
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        code = script.string or ""
        if code.strip():
            yield code


def extract_script_images(
    soup: BeautifulSoup,
    base_url: str,
    on_diagnostic: Optional[DiagnosticSink] = None,
) -> List[str]:
    found: Dict[str, None] = {}
    for code in iter_inline_scripts(soup):
        found.update(dict.fromkeys(extract_images_from_script(code, base_url, on_diagnostic)))
    return list(found)
