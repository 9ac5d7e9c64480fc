"""Platform-specific extractors.

Handlers are tried in order and the first whose matcher accepts the URL
wins.  Add a platform by appending a :class:`DomainHandler` to
:data:`DOMAIN_HANDLERS`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from readvault.snapshot.domains.reddit import extract_reddit, is_reddit_url
from readvault.snapshot.domains.twitter import extract_tweet, is_twitter_url
from readvault.snapshot.models import ExtractFailure, SnapshotContent

DomainOutcome = Optional[Union[SnapshotContent, ExtractFailure]]
Extractor = Callable[[str], DomainOutcome]


@dataclass(frozen=True)
class DomainHandler:
    name: str
    matches: Callable[[str], bool]
    extract: Extractor


DOMAIN_HANDLERS: Tuple[DomainHandler, ...] = (
    DomainHandler("twitter", is_twitter_url, extract_tweet),
    DomainHandler("reddit", is_reddit_url, extract_reddit),
)


def find_handler(url: str) -> Optional[DomainHandler]:
    for handler in DOMAIN_HANDLERS:
        if handler.matches(url):
            return handler
    return None


def find_extractor(url: str) -> Optional[Extractor]:
    """Return the extractor for *url*, or ``None`` if no platform claims it."""
    handler = find_handler(url)
    return handler.extract if handler else None


__all__ = [
    "DOMAIN_HANDLERS",
    "DomainHandler",
    "find_extractor",
    "find_handler",
]
