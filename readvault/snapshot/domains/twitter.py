"""Twitter/X extractor.

Tweets are read from the public oEmbed endpoint first; when that fails or
returns no text, the FxTwitter mirror's Open Graph tags are used instead.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional

import httpx
from bs4 import BeautifulSoup

from readvault.config import settings
from readvault.snapshot.fetcher import build_client, get_capped
from readvault.snapshot.metadata import meta_content
from readvault.snapshot.models import SnapshotContent
from readvault.snapshot.sanitizer import escape_html
from readvault.snapshot.text import format_byline_date, make_excerpt, truncate_at_word

log = logging.getLogger(__name__)

_TWEET_RE = re.compile(
    r"^https?://(?:(?:www|mobile)\.)?(?:twitter\.com|x\.com)/(\w+)/status(?:es)?/(\d+)",
    re.IGNORECASE,
)
# X Articles use /article/ instead of /status/.
_ARTICLE_RE = re.compile(
    r"^https?://(?:(?:www|mobile)\.)?(?:twitter\.com|x\.com)/(\w+)/article/(\d+)",
    re.IGNORECASE,
)
_AUTHOR_URL_RE = re.compile(r"(?:twitter\.com|x\.com)/(\w+)", re.IGNORECASE)

# Titles/descriptions that mean we were served a login or error page.
_ERROR_PAGE_PATTERNS = (
    re.compile(r"^log\s*in$", re.IGNORECASE),
    re.compile(r"^sign\s*up$", re.IGNORECASE),
    re.compile(r"^something went wrong", re.IGNORECASE),
    re.compile(r"^tweet$", re.IGNORECASE),
)

TWITTER_EPOCH_MS = 1288834974657
TITLE_SNIPPET_LENGTH = 50


class TweetRef(NamedTuple):
    username: str
    tweet_id: str


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def is_twitter_url(url: str) -> bool:
    """Return ``True`` for tweet status and X Article URLs."""
    return bool(_TWEET_RE.match(url) or _ARTICLE_RE.match(url))


def parse_tweet_url(url: str) -> Optional[TweetRef]:
    match = _TWEET_RE.match(url)
    if not match:
        return None
    return TweetRef(match.group(1), match.group(2))


def snowflake_datetime(snowflake: str) -> Optional[datetime]:
    """Decode the creation time packed into the upper bits of a tweet id."""
    try:
        millis = (int(snowflake) >> 22) + TWITTER_EPOCH_MS
        return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=millis)
    except (ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def tweet_title(username: str, text: str) -> str:
    """``Tweet by @user`` plus the first ~50 characters of the tweet."""
    base = f"Tweet by @{username}"
    snippet = " ".join(text.split())
    if not snippet:
        return base
    return f"{base}: {truncate_at_word(snippet, TITLE_SNIPPET_LENGTH, 0.7)}"


def _is_error_page_text(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return True
    stripped = value.strip()
    return any(pattern.search(stripped) for pattern in _ERROR_PAGE_PATTERNS)


def _byline(author_url: str, username: str, tweet_id: Optional[str]) -> str:
    posted = snowflake_datetime(tweet_id) if tweet_id else None
    date_part = f" · {format_byline_date(posted)}" if posted else ""
    return (
        f'<a href="{escape_html(author_url)}" rel="noopener noreferrer" target="_blank">'
        f"@{escape_html(username)}</a>{date_part}"
    )


def _build_snapshot(
    url: str,
    username: str,
    author_url: str,
    tweet_id: Optional[str],
    text: str,
    site_name: str,
) -> SnapshotContent:
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    body = "\n".join(f"<p>{escape_html(p)}</p>" for p in paragraphs)
    body += f'\n<p><a href="{escape_html(url)}">View on X →</a></p>'
    return SnapshotContent(
        title=tweet_title(username, text),
        byline=_byline(author_url, username, tweet_id),
        content=body,
        text_content=text,
        excerpt=make_excerpt(text, settings.excerpt_length),
        site_name=site_name,
        length=len(text),
        language=None,
    )


def tweet_text_from_embed(embed_html: str) -> str:
    """Join the ``<p>`` texts of an oEmbed blockquote with blank lines."""
    soup = BeautifulSoup(embed_html or "", "html.parser")
    blockquote = soup.find("blockquote")
    if blockquote is None:
        return ""
    parts: List[str] = []
    for paragraph in blockquote.find_all("p"):
        text = paragraph.get_text(" ", strip=True)
        if text:
            parts.append(text)
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def _from_oembed(client: httpx.Client, url: str) -> Optional[SnapshotContent]:
    try:
        response = get_capped(
            client,
            settings.twitter_oembed_url,
            params={"url": url, "omit_script": "true"},
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        log.info("oEmbed lookup failed for %s: %s", url, exc)
        return None

    text = tweet_text_from_embed(data.get("html", ""))
    if not text:
        return None

    author_url = data.get("author_url") or ""
    match = _AUTHOR_URL_RE.search(author_url)
    username = match.group(1) if match else (data.get("author_name") or "unknown")
    ref = parse_tweet_url(url)

    return _build_snapshot(
        url,
        username=username,
        author_url=author_url or f"https://x.com/{username}",
        tweet_id=ref.tweet_id if ref else None,
        text=text,
        site_name=data.get("provider_name") or "Twitter",
    )


def _from_fxtwitter(client: httpx.Client, url: str) -> Optional[SnapshotContent]:
    ref = parse_tweet_url(url)
    if ref is None:
        return None
    mirror_url = f"{settings.fxtwitter_base_url.rstrip('/')}/{ref.username}/status/{ref.tweet_id}"
    try:
        # FxTwitter only renders Open Graph tags for bot user agents.
        response = get_capped(
            client, mirror_url, headers={"User-Agent": "bot", "Accept": "text/html"}
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        log.info("FxTwitter lookup failed for %s: %s", url, exc)
        return None

    soup = BeautifulSoup(response.text, "html.parser")
    title = meta_content(soup, prop="og:title")
    description = meta_content(soup, prop="og:description")
    if _is_error_page_text(description) or _is_error_page_text(title):
        log.info("FxTwitter returned an error page for %s", url)
        return None

    return _build_snapshot(
        url,
        username=ref.username,
        author_url=f"https://twitter.com/{ref.username}",
        tweet_id=ref.tweet_id,
        text=description,
        site_name=meta_content(soup, prop="og:site_name") or "Twitter",
    )


def _article_placeholder(url: str) -> SnapshotContent:
    match = _ARTICLE_RE.match(url)
    username = match.group(1) if match else "unknown"
    article_id = match.group(2) if match else None
    notice = "X Articles require authentication and cannot be snapshotted."
    return SnapshotContent(
        title=f"X Article by @{username}",
        byline=_byline(f"https://x.com/{username}", username, article_id),
        content=(
            f"<p>{notice} "
            f'<a href="{escape_html(url)}">View the original article on X</a>.</p>'
        ),
        text_content=notice,
        excerpt=notice,
        site_name="X",
        length=len(notice),
        language=None,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_tweet(url: str) -> Optional[SnapshotContent]:
    """Build a snapshot for a tweet URL, or ``None`` if both sources fail.

    X Article URLs get a placeholder snapshot instead, since generic
    extraction would only capture the login wall.
    """
    if _ARTICLE_RE.match(url):
        return _article_placeholder(url)

    with build_client(timeout=settings.domain_timeout, follow_redirects=True) as client:
        snapshot = _from_oembed(client, url)
        if snapshot is not None:
            return snapshot
        log.info("Falling back to FxTwitter for %s", url)
        return _from_fxtwitter(client, url)
