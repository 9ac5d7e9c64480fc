"""Data models for the snapshot pipeline.

Every result type is a success/failure pair of frozen dataclasses.  Callers
discriminate with ``isinstance`` (or the ``ok`` class attribute) rather than
checking for ``None`` plus a separate error object.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class BlockedReason(str, Enum):
    """Why a snapshot could not be produced."""

    INVALID_URL = "invalid_url"
    SSRF_BLOCKED = "ssrf_blocked"
    FORBIDDEN = "forbidden"
    NOT_HTML = "not_html"
    TOO_LARGE = "too_large"
    TIMEOUT = "timeout"
    FETCH_ERROR = "fetch_error"
    NOARCHIVE = "noarchive"
    PARSE_FAILED = "parse_failed"


class SnapshotStatus(str, Enum):
    """Lifecycle states recorded by the job scheduler for each save."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    BLOCKED = "blocked"


# Storage keys are camelCase so blobs stay readable by the web reader.
_CONTENT_KEYS = {
    "title": "title",
    "byline": "byline",
    "content": "content",
    "text_content": "textContent",
    "excerpt": "excerpt",
    "site_name": "siteName",
    "length": "length",
    "language": "language",
}


@dataclass(frozen=True)
class SnapshotContent:
    """The reader-mode document persisted for a save."""

    title: str
    byline: Optional[str]
    content: str
    text_content: str
    excerpt: str
    site_name: Optional[str]
    length: int
    language: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in _CONTENT_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotContent":
        """Build from the camelCase storage form.

        Raises:
            KeyError: If a required key is missing.
        """
        return cls(**{attr: data[key] for attr, key in _CONTENT_KEYS.items()})


@dataclass(frozen=True)
class SnapshotMetadata:
    canonical_url: Optional[str]
    title: Optional[str]
    byline: Optional[str]
    excerpt: str
    site_name: Optional[str]
    image_url: Optional[str]
    word_count: int
    language: Optional[str]
    content_sha256: str


@dataclass(frozen=True)
class ProcessSuccess:
    ok: ClassVar[bool] = True

    content: SnapshotContent
    metadata: SnapshotMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "content": self.content.to_dict(), "metadata": asdict(self.metadata)}


@dataclass(frozen=True)
class ProcessFailure:
    ok: ClassVar[bool] = False

    reason: BlockedReason
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "reason": self.reason.value, "message": self.message}


ProcessResult = Union[ProcessSuccess, ProcessFailure]


# ---------------------------------------------------------------------------
# Fetcher results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FetchResult:
    """A successfully fetched HTML page."""

    ok: ClassVar[bool] = True

    html: str
    final_url: str
    content_type: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchFailure:
    ok: ClassVar[bool] = False

    reason: BlockedReason
    message: str


FetchOutcome = Union[FetchResult, FetchFailure]


# ---------------------------------------------------------------------------
# Extraction results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractFailure:
    """Extraction did not produce a document.

    ``reason`` is ``PARSE_FAILED`` for readability misses, ``NOARCHIVE`` when
    the parsed page forbids archiving, and whatever a domain extractor chose
    for platform error pages.
    """

    ok: ClassVar[bool] = False

    reason: BlockedReason
    message: str


ExtractOutcome = Union[SnapshotContent, ExtractFailure]


@dataclass(frozen=True)
class PageMetadata:
    """Best-effort page metadata; every field may be ``None``."""

    title: Optional[str] = None
    description: Optional[str] = None
    site_name: Optional[str] = None
    image_url: Optional[str] = None
    canonical_url: Optional[str] = None


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    reason: Optional[BlockedReason] = None
    message: Optional[str] = None
