"""Readability extraction: turns fetched HTML into a :class:`SnapshotContent`."""

from __future__ import annotations

import logging
from typing import Optional

import trafilatura
from bs4 import BeautifulSoup

from readvault.config import settings
from readvault.snapshot.metadata import meta_content
from readvault.snapshot.models import BlockedReason, ExtractFailure, ExtractOutcome, SnapshotContent
from readvault.snapshot.text import cap_text, make_excerpt

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _has_noarchive_meta(soup: BeautifulSoup) -> bool:
    """Return ``True`` if any ``<meta name="robots">`` carries ``noarchive``."""
    for tag in soup.find_all("meta"):
        name = (tag.get("name") or "").strip().lower()
        if name == "robots" and "noarchive" in (tag.get("content") or "").lower():
            return True
    return False


def _document_language(soup: BeautifulSoup) -> Optional[str]:
    """``og:locale`` → ``<html lang>`` → ``<meta http-equiv="content-language">``."""
    locale = meta_content(soup, prop="og:locale")
    if locale:
        return locale.replace("_", "-")
    html_tag = soup.find("html")
    lang = html_tag.get("lang") if html_tag else None
    if lang and lang.strip():
        return lang.strip()
    for tag in soup.find_all("meta"):
        if (tag.get("http-equiv") or "").lower() == "content-language":
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def _meta_attr(meta: object, name: str) -> Optional[str]:
    """Read a string field from trafilatura's metadata document, if present."""
    value = getattr(meta, name, None) if meta is not None else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _run_readability(html: str, url: str) -> Optional[str]:
    """Return the main content block as HTML, or ``None`` if nothing was found."""
    return trafilatura.extract(
        html,
        url=url,
        output_format="html",
        include_formatting=True,
        include_links=True,
        include_images=True,
        include_tables=True,
        include_comments=False,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_article(html: str, url: str) -> ExtractOutcome:
    """Extract the readable article from *html*.

    Returns an :class:`ExtractFailure` with reason ``NOARCHIVE`` if the parsed
    page carries a robots ``noarchive`` directive, and ``PARSE_FAILED`` when
    the heuristic finds no content block or fewer than
    ``settings.min_article_chars`` characters of text.

    The returned content is *not* sanitized; that is the pipeline's job.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
        if _has_noarchive_meta(soup):
            return ExtractFailure(BlockedReason.NOARCHIVE, "Page has noarchive directive")

        body_html = _run_readability(html, url)
        if not body_html:
            return ExtractFailure(BlockedReason.PARSE_FAILED, "Readability could not extract content")

        text = BeautifulSoup(body_html, "html.parser").get_text("\n", strip=True)
        if len(text) < settings.min_article_chars:
            return ExtractFailure(
                BlockedReason.PARSE_FAILED,
                f"Extracted text too short ({len(text)} chars)",
            )

        meta = trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001 - parser failures become parse_failed
        log.warning("Readability extraction crashed for %s: %s", url, exc)
        return ExtractFailure(BlockedReason.PARSE_FAILED, str(exc) or type(exc).__name__)

    text_content = cap_text(text, settings.max_text_length)

    description = _meta_attr(meta, "description")
    excerpt = make_excerpt(description or text_content, settings.excerpt_length)

    site_name = (
        _meta_attr(meta, "sitename")
        or meta_content(soup, prop="og:site_name")
        or meta_content(soup, name="twitter:site")
    )
    language = _meta_attr(meta, "language") or _document_language(soup)

    title = _meta_attr(meta, "title") or ""
    if not title and soup.title:
        title = soup.title.get_text(strip=True)

    return SnapshotContent(
        title=title,
        byline=_meta_attr(meta, "author"),
        content=body_html,
        text_content=text_content,
        excerpt=excerpt,
        site_name=site_name or None,
        length=len(text_content),
        language=language,
    )
