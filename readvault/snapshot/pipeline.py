"""Snapshot orchestration: URL in, sanitized reader document out.

Stages run strictly in order: domain extractor, then fetch, noarchive check,
readability (with metadata fallback), sanitize and hash.  A successful
domain extractor skips the generic stages.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from typing import Optional

from readvault.config import settings
from readvault.snapshot.domains import find_handler
from readvault.snapshot.extractor import extract_article
from readvault.snapshot.fetcher import check_noarchive, fetch_page
from readvault.snapshot.metadata import extract_metadata
from readvault.snapshot.models import (
    BlockedReason,
    ExtractFailure,
    FetchFailure,
    PageMetadata,
    ProcessFailure,
    ProcessResult,
    ProcessSuccess,
    SnapshotContent,
    SnapshotMetadata,
)
from readvault.snapshot.sanitizer import escape_html, sanitize_content
from readvault.snapshot.text import make_excerpt, word_count

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _try_domain_extractor(url: str):
    """Run the matching platform extractor, if any.

    Returns ``None`` to continue with the generic path.
    """
    handler = find_handler(url)
    if handler is None:
        return None
    try:
        outcome = handler.extract(url)
    except Exception:  # noqa: BLE001
        log.warning("%s extractor raised for %s; using generic path", handler.name, url,
                    exc_info=True)
        return None
    if outcome is None:
        log.warning("%s extractor returned nothing for %s; using generic path", handler.name, url)
    return outcome


def build_fallback_content(meta: PageMetadata, url: str) -> Optional[SnapshotContent]:
    """Minimal document from page metadata when readability found no article."""
    if not meta.title and not meta.description:
        return None
    text = meta.description or meta.title or ""
    paragraphs = []
    if meta.description:
        paragraphs.append(f"<p>{escape_html(meta.description)}</p>")
    paragraphs.append(f'<p><a href="{escape_html(url)}">View original</a></p>')
    return SnapshotContent(
        title=meta.title or "",
        byline=None,
        content="\n".join(paragraphs),
        text_content=text,
        excerpt=make_excerpt(text, settings.excerpt_length),
        site_name=meta.site_name,
        length=len(text),
        language=None,
    )


def _finish(content: SnapshotContent, meta: PageMetadata, final_url: str) -> ProcessSuccess:
    clean_html = sanitize_content(content.content)
    byline = content.byline
    if byline and "<" in byline:
        byline = sanitize_content(byline)

    title = content.title or meta.title or ""
    site_name = content.site_name or meta.site_name
    content = replace(content, content=clean_html, byline=byline, title=title, site_name=site_name)

    digest = hashlib.sha256(clean_html.encode("utf-8")).hexdigest()
    metadata = SnapshotMetadata(
        canonical_url=meta.canonical_url or final_url,
        title=title or None,
        byline=byline,
        excerpt=content.excerpt,
        site_name=site_name,
        image_url=meta.image_url,
        word_count=word_count(content.text_content),
        language=content.language,
        content_sha256=digest,
    )
    return ProcessSuccess(content=content, metadata=metadata)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def process_snapshot(url: str) -> ProcessResult:
    """Produce a reader-mode snapshot of *url*.

    Never raises for network or parsing problems; failures come back as a
    :class:`ProcessFailure` carrying a :class:`BlockedReason`.  No retries
    happen here.
    """
    log.info("Processing snapshot for %s", url)

    domain_outcome = _try_domain_extractor(url)
    if isinstance(domain_outcome, ExtractFailure):
        log.info("Snapshot of %s failed: %s", url, domain_outcome.reason.value)
        return ProcessFailure(domain_outcome.reason, domain_outcome.message)
    if isinstance(domain_outcome, SnapshotContent):
        return _finish(domain_outcome, PageMetadata(), url)

    fetched = fetch_page(url)
    if isinstance(fetched, FetchFailure):
        log.info("Fetch of %s failed: %s (%s)", url, fetched.reason.value, fetched.message)
        return ProcessFailure(fetched.reason, fetched.message)

    if check_noarchive(fetched.headers, fetched.html):
        log.info("Snapshot of %s blocked by noarchive", url)
        return ProcessFailure(BlockedReason.NOARCHIVE, "Page has noarchive directive")

    meta = extract_metadata(fetched.html, fetched.final_url)
    article = extract_article(fetched.html, fetched.final_url)

    if isinstance(article, ExtractFailure):
        if article.reason is not BlockedReason.PARSE_FAILED:
            return ProcessFailure(article.reason, article.message)
        fallback = build_fallback_content(meta, fetched.final_url)
        if fallback is None:
            log.info("Extraction of %s failed with no usable metadata", url)
            return ProcessFailure(article.reason, article.message)
        log.warning("Readability failed for %s (%s); using metadata fallback", url, article.message)
        article = fallback

    result = _finish(article, meta, fetched.final_url)
    log.info("Snapshot of %s ready: %d words, sha256 %s", url,
             result.metadata.word_count, result.metadata.content_sha256[:12])
    return result
