"""Data models returned by the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DiagnosticKind(str, Enum):
    """Recoverable failures reported while extracting."""

    NORMALIZE_FAILED = "normalize_failed"
    SCRIPT_PARSE_FAILED = "script_parse_failed"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem encountered during extraction."""

    kind: DiagnosticKind
    message: str
    source: Optional[str] = None


@dataclass
class ExtractResult:
    """Unique absolute image URLs discovered for a single document."""

    urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.urls)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"urls": list(self.urls), "total": self.total}
        if self.error is not None:
            data["error"] = self.error
        return data
