"""Reddit extractor.

Scrapes the old.reddit.com rendering, whose server-side HTML is stable and
needs no JavaScript.  Four URL kinds are supported: posts, comments,
subreddits and user profiles.  ``redd.it`` short links are resolved first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Union
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup, Tag

from readvault.config import settings
from readvault.snapshot.fetcher import build_client, get_capped
from readvault.snapshot.models import BlockedReason, ExtractFailure, SnapshotContent
from readvault.snapshot.sanitizer import escape_html
from readvault.snapshot.text import format_byline_date, make_excerpt, truncate_at_word

log = logging.getLogger(__name__)

REDDIT_DOMAINS = ("reddit.com", "www.reddit.com", "old.reddit.com", "new.reddit.com",
                  "np.reddit.com", "m.reddit.com", "i.reddit.com")
SHORT_LINK_HOST = "redd.it"

_HOST = r"^https?://(?:(?:www|old|new|np|m|i)\.)?reddit\.com"
_SHORT_RE = re.compile(r"^https?://redd\.it/(\w+)", re.IGNORECASE)
_COMMENT_RE = re.compile(_HOST + r"/r/(\w+)/comments/(\w+)/([^/?]+)/(\w+)", re.IGNORECASE)
_POST_RE = re.compile(_HOST + r"/r/(\w+)/comments/(\w+)(?:/([^/?]+))?", re.IGNORECASE)
_SUBREDDIT_RE = re.compile(_HOST + r"/r/(\w+)/?(?:\?.*)?$", re.IGNORECASE)
_USER_RE = re.compile(_HOST + r"/u(?:ser)?/([^/?]+)", re.IGNORECASE)

_PRIVATE_RE = re.compile(r"this community is private", re.IGNORECASE)
# (pattern, reason) pairs; access restrictions are reported as forbidden.
_ERROR_INDICATORS = (
    (_PRIVATE_RE, BlockedReason.FORBIDDEN),
    (re.compile(r"you must be invited", re.IGNORECASE), BlockedReason.FORBIDDEN),
    (re.compile(r"this subreddit is quarantined", re.IGNORECASE), BlockedReason.FORBIDDEN),
    (re.compile(r"page not found", re.IGNORECASE), BlockedReason.FETCH_ERROR),
    (re.compile(r"content is not available", re.IGNORECASE), BlockedReason.FETCH_ERROR),
)
DELETED_MARKERS = ("[deleted]", "[removed]")

DELETED_POST_TEXT = "[This content has been deleted or removed]"
DELETED_COMMENT_TEXT = "[This comment has been deleted or removed]"

POST_TITLE_LENGTH = 60
COMMENT_TITLE_LENGTH = 50
MAX_RECENT_POSTS = 5

_MIRROR_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ReadvaultBot/1.0; +https://readvault.dev/bot)",
    "Accept": "text/html",
    "Accept-Language": "en-US,en;q=0.9",
}

RedditOutcome = Optional[Union[SnapshotContent, ExtractFailure]]


@dataclass(frozen=True)
class RedditUrlInfo:
    kind: str  # post | comment | subreddit | user
    original_url: str
    subreddit: Optional[str] = None
    post_id: Optional[str] = None
    title_slug: Optional[str] = None
    comment_id: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_short_link(self) -> bool:
        return self.kind == "post" and not self.subreddit and bool(self.post_id)


# ---------------------------------------------------------------------------
# URL handling
# ---------------------------------------------------------------------------

def is_reddit_url(url: str) -> bool:
    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    if hostname == SHORT_LINK_HOST:
        return True
    return any(hostname == domain or hostname.endswith(f".{domain}") for domain in REDDIT_DOMAINS)


def parse_reddit_url(url: str) -> Optional[RedditUrlInfo]:
    """Classify *url*; comments are matched before posts since they are more specific."""
    match = _SHORT_RE.match(url)
    if match:
        return RedditUrlInfo("post", url, post_id=match.group(1))

    match = _COMMENT_RE.match(url)
    if match:
        sub, post_id, slug, comment_id = match.groups()
        return RedditUrlInfo("comment", url, subreddit=sub, post_id=post_id,
                             title_slug=slug, comment_id=comment_id)

    match = _POST_RE.match(url)
    if match:
        sub, post_id, slug = match.groups()
        return RedditUrlInfo("post", url, subreddit=sub, post_id=post_id, title_slug=slug)

    match = _SUBREDDIT_RE.match(url)
    if match:
        return RedditUrlInfo("subreddit", url, subreddit=match.group(1))

    match = _USER_RE.match(url)
    if match:
        return RedditUrlInfo("user", url, username=match.group(1))

    return None


def mirror_url(info: RedditUrlInfo) -> str:
    """The old.reddit.com address that renders *info*."""
    base = settings.reddit_mirror_url.rstrip("/")
    if info.kind == "comment":
        return (f"{base}/r/{info.subreddit}/comments/{info.post_id}/"
                f"{info.title_slug}/{info.comment_id}")
    if info.kind == "post":
        if info.subreddit and info.post_id:
            slug = f"/{info.title_slug}" if info.title_slug else ""
            return f"{base}/r/{info.subreddit}/comments/{info.post_id}{slug}"
        return f"{base}/{info.post_id}"
    if info.kind == "subreddit":
        return f"{base}/r/{info.subreddit}"
    return f"{base}/u/{info.username}"


def resolve_short_link(info: RedditUrlInfo) -> RedditUrlInfo:
    """Follow a ``redd.it`` link to its canonical post URL.

    Returns *info* unchanged if the HEAD request fails.
    """
    short_url = f"https://{SHORT_LINK_HOST}/{info.post_id}"
    try:
        with build_client(timeout=settings.domain_timeout, follow_redirects=True) as client:
            response = client.head(short_url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        log.info("Could not resolve short link %s: %s", short_url, exc)
        return info

    final_url = str(response.url)
    resolved = parse_reddit_url(final_url)
    if resolved is not None and not resolved.is_short_link:
        return resolved
    return replace(info, original_url=final_url)


# ---------------------------------------------------------------------------
# Page helpers
# ---------------------------------------------------------------------------

def _fetch_mirror(url: str) -> Optional[BeautifulSoup]:
    try:
        with build_client(
            timeout=settings.domain_timeout, follow_redirects=True, headers=_MIRROR_HEADERS
        ) as client:
            response = get_capped(client, url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        log.info("Reddit mirror fetch failed for %s: %s", url, exc)
        return None
    return BeautifulSoup(response.text, "html.parser")


def _page_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return root.get_text(" ")


def error_page_reason(soup: BeautifulSoup) -> Optional[BlockedReason]:
    """Return a failure reason if the page is a Reddit error or restriction page."""
    text = _page_text(soup)
    for pattern, reason in _ERROR_INDICATORS:
        if pattern.search(text):
            return reason
    return None


def is_deleted(text: str) -> bool:
    lowered = text.strip().lower()
    return any(marker in lowered for marker in DELETED_MARKERS)


def _error_failure(soup: BeautifulSoup, url: str) -> Optional[ExtractFailure]:
    reason = error_page_reason(soup)
    if reason is None:
        return None
    log.info("Reddit returned an error page for %s (%s)", url, reason.value)
    return ExtractFailure(reason, f"Reddit page unavailable: {url}")


def _select_first(root: Union[BeautifulSoup, Tag], *selectors: str) -> Optional[Tag]:
    for selector in selectors:
        found = root.select_one(selector)
        if found is not None:
            return found
    return None


def _text(tag: Optional[Tag]) -> str:
    return tag.get_text(strip=True) if tag is not None else ""


def _parse_time(tag: Optional[Tag]) -> Optional[datetime]:
    """Read a ``<time>`` element's ``datetime`` attribute, then its ``title``."""
    if tag is None:
        return None
    raw = tag.get("datetime")
    if raw:
        try:
            return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            pass
    raw = tag.get("title")
    if raw:
        # old.reddit renders e.g. "Sat Jan 4 12:00:00 2026 UTC"
        try:
            return datetime.strptime(raw.strip(), "%a %b %d %H:%M:%S %Y %Z")
        except ValueError:
            pass
    return None


def _score(tag: Optional[Tag]) -> Optional[str]:
    if tag is None:
        return None
    return tag.get("title") or _text(tag) or None


def _strip_prefix(subreddit: str) -> str:
    return re.sub(r"^r/", "", subreddit)


def _byline(author: str, subreddit: str, score: Optional[str], posted: Optional[datetime]) -> str:
    score_part = f" · {score} points" if score else ""
    date_part = f" · {format_byline_date(posted)}" if posted else ""
    return (
        f'<a href="https://reddit.com/u/{escape_html(author)}" rel="noopener noreferrer" '
        f'target="_blank">u/{escape_html(author)}</a> in '
        f'<a href="https://reddit.com/r/{escape_html(_strip_prefix(subreddit))}" '
        f'rel="noopener noreferrer" target="_blank">{escape_html(subreddit)}</a>'
        f"{score_part}{date_part}"
    )


def post_title(author: str, subreddit: str, title: str) -> str:
    prefix = f"Post in r/{_strip_prefix(subreddit)}" if subreddit else f"Post by u/{author}"
    return f"{prefix}: {truncate_at_word(title, POST_TITLE_LENGTH, 0.7)}"


def _snapshot(title: str, byline: str, content: str, text: str) -> SnapshotContent:
    return SnapshotContent(
        title=title,
        byline=byline,
        content=content,
        text_content=text,
        excerpt=make_excerpt(text, settings.excerpt_length),
        site_name="Reddit",
        length=len(text),
        language=None,
    )


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def extract_post(info: RedditUrlInfo) -> RedditOutcome:
    url = mirror_url(info)
    soup = _fetch_mirror(url)
    if soup is None:
        return None
    failure = _error_failure(soup, url)
    if failure:
        return failure

    container = _select_first(soup, ".thing.link", '[data-type="link"]')
    if container is None:
        return None

    title = _text(_select_first(container, ".title a.title", "a.title")) or "Reddit Post"
    subreddit = _text(container.select_one(".subreddit")) or info.subreddit or ""
    author = _text(container.select_one(".author")) or "[deleted]"
    posted = _parse_time(container.select_one("time"))
    score = _score(_select_first(container, ".score.unvoted", ".score"))

    self_text = ""
    self_html = ""
    body = _select_first(soup, ".expando .usertext-body .md", ".selftext .md")
    if body is not None:
        self_text = body.get_text("\n", strip=True)
        self_html = body.decode_contents()
        if is_deleted(self_text):
            self_text = DELETED_POST_TEXT
            self_html = f"<p><em>{self_text}</em></p>"

    link_tag = container.select_one("a.title")
    link_url = link_tag.get("href") if link_tag is not None else None
    is_external = bool(link_url) and "reddit.com" not in link_url and not link_url.startswith("/")

    content = ""
    if is_external:
        safe_link = escape_html(link_url)
        content += (f'<p><strong>Link:</strong> <a href="{safe_link}" rel="noopener noreferrer" '
                    f'target="_blank">{safe_link}</a></p>')
    content += self_html
    if not content:
        content = "<p><em>This post contains no text content.</em></p>"

    if is_external:
        text = f"Link: {link_url}\n\n{self_text}".strip()
    else:
        text = self_text or title

    return _snapshot(post_title(author, subreddit, title),
                     _byline(author, subreddit, score, posted), content, text)


def extract_comment(info: RedditUrlInfo) -> RedditOutcome:
    url = mirror_url(info)
    soup = _fetch_mirror(url)
    if soup is None:
        return None
    failure = _error_failure(soup, url)
    if failure:
        return failure

    comment_id = info.comment_id
    comment = _select_first(soup, f"#thing_t1_{comment_id}",
                            f'.comment[data-fullname="t1_{comment_id}"]')
    if comment is None:
        comment = _select_first(soup, ".comment.target", ".comment")
        if comment is None:
            return None
        log.warning("Comment t1_%s not found on %s; using the first comment on the page",
                    comment_id, url)

    post_title_text = _text(soup.select_one(".title a.title")) or "Reddit Post"
    author = _text(comment.select_one(".author")) or "[deleted]"
    subreddit = _text(soup.select_one(".subreddit")) or info.subreddit or ""

    body = comment.select_one(".usertext-body .md")
    text = body.get_text("\n", strip=True) if body is not None else ""
    body_html = body.decode_contents() if body is not None else ""
    if is_deleted(text):
        text = DELETED_COMMENT_TEXT
        body_html = f"<p><em>{text}</em></p>"

    posted = _parse_time(comment.select_one("time"))
    score = _score(comment.select_one(".score.unvoted"))

    parent = (f"https://reddit.com/r/{escape_html(_strip_prefix(subreddit))}"
              f"/comments/{escape_html(info.post_id or '')}")
    content = (f'<p><strong>Comment on:</strong> <a href="{parent}" rel="noopener noreferrer" '
               f'target="_blank">{escape_html(post_title_text)}</a></p>')
    content += "<hr />"
    content += body_html or "<p><em>No content</em></p>"

    snippet = make_excerpt(text, settings.excerpt_length)[:COMMENT_TITLE_LENGTH]
    ellipsis = "..." if len(text) > COMMENT_TITLE_LENGTH else ""
    title = f"Comment by u/{author}: {snippet}{ellipsis}"

    return _snapshot(title, _byline(author, subreddit, score, posted), content, text)


def _private_subreddit(info: RedditUrlInfo) -> SnapshotContent:
    text = "This subreddit is private."
    return SnapshotContent(
        title=f"r/{info.subreddit}",
        byline="Private subreddit",
        content="<p>This subreddit is private. You must be invited to view this community.</p>",
        text_content=text,
        excerpt=text,
        site_name="Reddit",
        length=len(text),
        language=None,
    )


def extract_subreddit(info: RedditUrlInfo) -> RedditOutcome:
    url = mirror_url(info)
    soup = _fetch_mirror(url)
    if soup is None:
        return None
    # A private community is a valid thing to save, not an error.
    if _PRIVATE_RE.search(_page_text(soup)):
        return _private_subreddit(info)
    failure = _error_failure(soup, url)
    if failure:
        return failure

    subreddit = info.subreddit or ""
    description_tag = _select_first(soup, ".side .md", ".titlebox .usertext-body .md")
    description = _text(description_tag)
    description_html = description_tag.decode_contents() if description_tag is not None else ""
    subscribers = _text(soup.select_one(".subscribers .number"))
    online = _text(soup.select_one(".users-online .number"))
    tagline = _text(soup.select_one(".titlebox h1.redditname")) or f"r/{subreddit}"

    content = f"<h2>{escape_html(tagline)}</h2>"
    stats = []
    if subscribers:
        stats.append(f"<strong>{escape_html(subscribers)}</strong> subscribers")
    if online:
        stats.append(f"<strong>{escape_html(online)}</strong> online")
    if stats:
        content += f"<p>{' · '.join(stats)}</p>"
    if description_html:
        content += "<hr />" + description_html
    else:
        content += "<p><em>No description available.</em></p>"

    byline = f"{subscribers} subscribers" if subscribers else "Reddit community"
    text = description or f"r/{subreddit} - Reddit community"
    return _snapshot(f"r/{subreddit}", byline, content, text)


def extract_user(info: RedditUrlInfo) -> RedditOutcome:
    url = mirror_url(info)
    soup = _fetch_mirror(url)
    if soup is None:
        return None
    failure = _error_failure(soup, url)
    if failure:
        return failure

    username = info.username or ""
    karma = _text(soup.select_one(".karma"))
    created = _parse_time(soup.select_one(".age time"))
    trophies = [t for t in (_text(tag) for tag in soup.select(".trophy-name")) if t]
    recent: List[str] = []
    for tag in soup.select(".thing.link .title a.title"):
        post = _text(tag)
        if post:
            recent.append(post)
        if len(recent) >= MAX_RECENT_POSTS:
            break

    content = f"<h2>u/{escape_html(username)}</h2>"
    if karma:
        content += f"<p><strong>Karma:</strong> {escape_html(karma)}</p>"
    if created:
        content += f"<p><strong>Account created:</strong> {format_byline_date(created)}</p>"
    if trophies:
        content += "<h3>Trophies</h3>"
        content += f"<p>{', '.join(escape_html(t) for t in trophies)}</p>"
    if recent:
        content += "<h3>Recent Activity</h3><ul>"
        content += "".join(f"<li>{escape_html(post)}</li>" for post in recent)
        content += "</ul>"

    parts = []
    if karma:
        parts.append(f"{karma} karma")
    if created:
        parts.append(f"Redditor since {format_byline_date(created)}")
    byline = " · ".join(parts) or "Reddit user"
    text = f"u/{username} - {', '.join(parts) or 'Reddit user'}"
    return _snapshot(f"u/{username}", byline, content, text)


_EXTRACTORS = {
    "post": extract_post,
    "comment": extract_comment,
    "subreddit": extract_subreddit,
    "user": extract_user,
}


def extract_reddit(url: str) -> RedditOutcome:
    """Snapshot a Reddit URL.

    Returns ``None`` when the URL is not a recognised Reddit page or the
    mirror could not be read, and an :class:`ExtractFailure` when Reddit
    serves an error or restriction page.
    """
    info = parse_reddit_url(url)
    if info is None:
        return None
    if info.is_short_link:
        info = resolve_short_link(info)
    return _EXTRACTORS[info.kind](info)
