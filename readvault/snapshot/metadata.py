"""Open Graph / Twitter Card / canonical-link metadata extraction."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from readvault.snapshot.models import PageMetadata

log = logging.getLogger(__name__)


def meta_content(soup: BeautifulSoup, *, prop: str | None = None, name: str | None = None) -> Optional[str]:
    """Return the stripped ``content`` of the first matching ``<meta>``, or ``None``."""
    attrs = {"property": prop} if prop else {"name": name}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    value = tag.get("content")
    if isinstance(value, list):
        value = " ".join(value)
    value = (value or "").strip()
    return value or None


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def _absolute(value: Optional[str], base_url: str) -> Optional[str]:
    """Resolve *value* against *base_url*; ``None`` if the result is not http(s)."""
    if not value:
        return None
    try:
        resolved = urljoin(base_url, value)
        scheme = urlsplit(resolved).scheme
    except ValueError:
        return None
    return resolved if scheme in ("http", "https") else None


def extract_metadata(html: str, url: str) -> PageMetadata:
    """Pull title, description, site name, image and canonical URL from *html*.

    Each field follows a fixed priority chain:

    * title: ``og:title`` → ``twitter:title`` → ``<title>``
    * description: ``og:description`` → ``twitter:description`` → ``description``
    * site name: ``og:site_name`` → ``twitter:site``
    * image: ``og:image`` → ``twitter:image``
    * canonical: ``<link rel="canonical">`` → ``og:url``

    Relative image and canonical URLs are resolved against *url* (the final,
    post-redirect URL).  Never raises; unparseable input yields an empty
    :class:`PageMetadata`.
    """
    try:
        soup = BeautifulSoup(html or "", "html.parser")

        title_tag = soup.find("title")
        title_text = title_tag.get_text(strip=True) if title_tag else None
        title = _first(
            meta_content(soup, prop="og:title"),
            meta_content(soup, name="twitter:title"),
            title_text,
        )
        description = _first(
            meta_content(soup, prop="og:description"),
            meta_content(soup, name="twitter:description"),
            meta_content(soup, name="description"),
        )
        site_name = _first(
            meta_content(soup, prop="og:site_name"),
            meta_content(soup, name="twitter:site"),
        )
        image = _first(
            meta_content(soup, prop="og:image"),
            meta_content(soup, name="twitter:image"),
        )

        canonical_link = soup.find("link", rel="canonical")
        canonical_href = canonical_link.get("href") if canonical_link else None
        canonical = _first(
            (canonical_href or "").strip() or None,
            meta_content(soup, prop="og:url"),
        )

        return PageMetadata(
            title=title,
            description=description,
            site_name=site_name,
            image_url=_absolute(image, url),
            canonical_url=_absolute(canonical, url),
        )
    except Exception:  # noqa: BLE001 - metadata is strictly best-effort
        log.debug("Metadata extraction failed for %s", url, exc_info=True)
        return PageMetadata()
