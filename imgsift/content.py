"""DOM extraction pass: image attributes, CSS backgrounds and meta tags."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List

from bs4 import BeautifulSoup

from .config import ExtractionOptions
from .utils import resolve_candidate

IMG_SOURCE_ATTRIBUTES = (
    "src",
    "data-src",
    "data-original",
    "data-lazy-src",
    "data-srcset",
    "data-original-src",
    "data-lazyload",
    "data-url",
    "data-image",
)
META_IMAGE_SELECTORS = (
    'meta[property="og:image"]',
    'meta[name="twitter:image"]',
    'meta[property="og:image:url"]',
    'meta[property="og:image:secure_url"]',
    'meta[name="og:image"]',
)
CSS_URL_PATTERN = re.compile(r"""url\(['"]?([^'")]+)['"]?\)""", re.IGNORECASE)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def parse_srcset(srcset: str) -> List[str]:
    """Split a srcset value into URLs, dropping width/density descriptors."""
    urls: List[str] = []
    for entry in srcset.split(","):
        tokens = entry.split()
        if tokens:
            urls.append(tokens[0])
    return urls


def extract_background_urls(css_text: str) -> List[str]:
    """Return the targets of every ``url(...)`` reference in a CSS fragment."""
    urls: List[str] = []
    for match in CSS_URL_PATTERN.finditer(css_text):
        url = match.group(1).strip()
        if len(url) >= 2 and url[0] == url[-1] and url[0] in "\"'":
            url = url[1:-1]
        urls.append(url)
    return urls


def _attribute_text(value) -> str:
    # html.parser returns multi-valued attributes (e.g. class) as lists
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def iter_img_tag_sources(soup: BeautifulSoup) -> Iterator[str]:
    """Yield raw sources from every ``<img>``, lazy-load attributes included."""
    for img in soup.find_all("img"):
        for attr in IMG_SOURCE_ATTRIBUTES:
            value = _attribute_text(img.get(attr))
            if value:
                yield value
        srcset = _attribute_text(img.get("srcset"))
        if srcset:
            yield from parse_srcset(srcset)


def iter_css_background_sources(soup: BeautifulSoup) -> Iterator[str]:
    """Yield ``url(...)`` targets from inline styles and ``<style>`` blocks."""
    for element in soup.select('[style*="background"]'):
        yield from extract_background_urls(_attribute_text(element.get("style")))
    for style in soup.find_all("style"):
        yield from extract_background_urls(style.string or "")


def iter_meta_image_sources(soup: BeautifulSoup) -> Iterator[str]:
    """Yield Open Graph and Twitter card image references."""
    for selector in META_IMAGE_SELECTORS:
        for meta in soup.select(selector):
            content = _attribute_text(meta.get("content"))
            if content:
                yield content


def extract_dom_images(
    soup: BeautifulSoup,
    base_url: str,
    options: ExtractionOptions,
) -> List[str]:
    """Run the enabled markup-based passes and return resolved image URLs."""
    sources: List[Iterable[str]] = []
    if options.extract_img_tags:
        sources.append(iter_img_tag_sources(soup))
    if options.extract_css_backgrounds:
        sources.append(iter_css_background_sources(soup))
    if options.extract_meta_images:
        sources.append(iter_meta_image_sources(soup))

    urls: List[str] = []
    for source in sources:
        for raw in source:
            full_url = resolve_candidate(raw, base_url, options.on_diagnostic)
            if full_url:
                urls.append(full_url)
    return urls
