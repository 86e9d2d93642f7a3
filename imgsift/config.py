"""Configuration objects and constants for image extraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .models import Diagnostic

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"


def accept_all(url: str) -> bool:
    return True


@dataclass(frozen=True)
class ExtractionOptions:
    """Settings controlling which passes run and how pages are fetched."""

    extract_img_tags: bool = True
    extract_css_backgrounds: bool = True
    extract_meta_images: bool = True
    extract_js_images: bool = True
    url_filter: Callable[[str], bool] = accept_all
    timeout: float = DEFAULT_TIMEOUT_MS
    user_agent: str = DEFAULT_USER_AGENT
    on_diagnostic: Optional[Callable[[Diagnostic], None]] = None

    def __post_init__(self) -> None:
        if not callable(self.url_filter):
            raise TypeError("url_filter must be callable")
        if self.on_diagnostic is not None and not callable(self.on_diagnostic):
            raise TypeError("on_diagnostic must be callable or None")
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise TypeError("timeout must be a number of milliseconds")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("user_agent must be a non-empty string")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0
