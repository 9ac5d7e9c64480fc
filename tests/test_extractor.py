"""Tests for readability extraction, metadata extraction and text helpers.

Mocking strategy:
- The happy-path test runs the real trafilatura heuristic against a realistic
  article fixture.
- ``trafilatura.extract`` / ``trafilatura.extract_metadata`` are patched where
  a test needs a specific heuristic outcome (nothing found, too little text,
  a crash).
"""

from __future__ import annotations

from datetime import datetime
from unittest.mock import patch

from readvault.config import settings
from readvault.snapshot.extractor import extract_article
from readvault.snapshot.metadata import extract_metadata
from readvault.snapshot.models import BlockedReason, ExtractFailure, PageMetadata, SnapshotContent
from readvault.snapshot.text import (
    cap_text,
    format_byline_date,
    make_excerpt,
    truncate_at_word,
    word_count,
)

# ---------------------------------------------------------------------------
# Fixtures / constants
# ---------------------------------------------------------------------------

_PARAGRAPHS = [
    "Grid-scale batteries have quietly become the fastest growing part of the "
    "electricity system, with installations doubling for the third year running.",
    "Operators say the appeal is flexibility: a battery can absorb surplus solar "
    "output at midday and release it during the evening peak, smoothing prices.",
    "Critics point to supply chain risks for lithium and cobalt, and to the "
    "limited duration of most installations, which rarely exceeds four hours.",
    "Researchers are now testing iron-air and sodium chemistries that promise "
    "cheaper storage over days rather than hours, if they can scale in time.",
]

_ARTICLE_HTML = f"""\
<!DOCTYPE html>
<html lang="en">
<head>
  <title>Batteries Are Eating the Grid | Example News</title>
  <meta property="og:title" content="Batteries Are Eating the Grid">
  <meta property="og:site_name" content="Example News">
  <meta name="description" content="Why storage is the fastest growing part of the power system.">
  <meta name="author" content="Jane Doe">
</head>
<body>
  <nav><a href="/">Home</a> <a href="/energy">Energy</a></nav>
  <article>
    <h1>Batteries Are Eating the Grid</h1>
    {''.join(f'<p>{p}</p>' for p in _PARAGRAPHS)}
  </article>
  <footer>Copyright Example News</footer>
</body>
</html>
"""

_LONG_BODY = "<div>" + "".join(f"<p>{p}</p>" for p in _PARAGRAPHS) + "</div>"


# ---------------------------------------------------------------------------
# extract_article
# ---------------------------------------------------------------------------

class TestExtractArticle:
    def test_realistic_article(self) -> None:
        result = extract_article(_ARTICLE_HTML, "https://news.example.com/batteries")

        assert isinstance(result, SnapshotContent)
        assert "Grid-scale batteries" in result.text_content
        assert "iron-air" in result.text_content
        assert "<p>" in result.content
        assert result.length == len(result.text_content)
        assert result.site_name == "Example News"
        assert result.language == "en"
        assert "Batteries Are Eating the Grid" in result.title
        assert result.excerpt == "Why storage is the fastest growing part of the power system."

    def test_noarchive_meta_short_circuits(self) -> None:
        html = _ARTICLE_HTML.replace(
            "<head>", '<head><meta name="robots" content="noindex, noarchive">'
        )
        with patch("readvault.snapshot.extractor.trafilatura.extract") as mock_extract:
            result = extract_article(html, "https://news.example.com/batteries")

        assert isinstance(result, ExtractFailure)
        assert result.reason is BlockedReason.NOARCHIVE
        mock_extract.assert_not_called()

    def test_nothing_found_is_parse_failed(self) -> None:
        with patch("readvault.snapshot.extractor.trafilatura.extract", return_value=None):
            result = extract_article(_ARTICLE_HTML, "https://news.example.com/batteries")

        assert isinstance(result, ExtractFailure)
        assert result.reason is BlockedReason.PARSE_FAILED
        assert result.message == "Readability could not extract content"

    def test_too_little_text_is_parse_failed(self) -> None:
        with patch(
            "readvault.snapshot.extractor.trafilatura.extract", return_value="<p>Too short.</p>"
        ):
            result = extract_article(_ARTICLE_HTML, "https://news.example.com/batteries")

        assert isinstance(result, ExtractFailure)
        assert result.reason is BlockedReason.PARSE_FAILED
        assert result.message == "Extracted text too short (10 chars)"

    def test_heuristic_crash_is_parse_failed(self) -> None:
        with patch(
            "readvault.snapshot.extractor.trafilatura.extract", side_effect=RuntimeError("boom")
        ):
            result = extract_article(_ARTICLE_HTML, "https://news.example.com/batteries")

        assert isinstance(result, ExtractFailure)
        assert result.reason is BlockedReason.PARSE_FAILED
        assert result.message == "boom"

    def test_fallbacks_without_heuristic_metadata(self) -> None:
        html = (
            '<html><head><title>Plain Title</title>'
            '<meta property="og:locale" content="fr_FR">'
            '<meta name="twitter:site" content="@plain"></head><body></body></html>'
        )
        with patch(
            "readvault.snapshot.extractor.trafilatura.extract", return_value=_LONG_BODY
        ), patch("readvault.snapshot.extractor.trafilatura.extract_metadata", return_value=None):
            result = extract_article(html, "https://plain.example.com/")

        assert isinstance(result, SnapshotContent)
        assert result.title == "Plain Title"
        assert result.byline is None
        assert result.site_name == "@plain"
        assert result.language == "fr-FR"
        assert result.excerpt == make_excerpt(result.text_content, settings.excerpt_length)

    def test_text_capped_at_max_length(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "max_text_length", 120)
        with patch(
            "readvault.snapshot.extractor.trafilatura.extract", return_value=_LONG_BODY
        ), patch("readvault.snapshot.extractor.trafilatura.extract_metadata", return_value=None):
            result = extract_article(_ARTICLE_HTML, "https://news.example.com/batteries")

        assert isinstance(result, SnapshotContent)
        assert len(result.text_content) == 123
        assert result.text_content.endswith("...")
        assert result.length == 123


# ---------------------------------------------------------------------------
# extract_metadata
# ---------------------------------------------------------------------------

class TestExtractMetadata:
    def test_priority_chains(self) -> None:
        html = """
        <html><head>
          <title>Fallback</title>
          <meta name="twitter:title" content="Twitter Title">
          <meta property="og:title" content="OG Title">
          <meta name="description" content="Plain description">
          <meta name="twitter:description" content="Twitter description">
          <meta name="twitter:site" content="@site">
          <meta name="twitter:image" content="https://cdn.example.com/t.png">
          <meta property="og:url" content="https://example.com/og">
        </head></html>
        """
        meta = extract_metadata(html, "https://example.com/page")

        assert meta.title == "OG Title"
        assert meta.description == "Twitter description"
        assert meta.site_name == "@site"
        assert meta.image_url == "https://cdn.example.com/t.png"
        assert meta.canonical_url == "https://example.com/og"

    def test_title_tag_fallback(self) -> None:
        meta = extract_metadata("<title> Only Title </title>", "https://example.com/")
        assert meta.title == "Only Title"
        assert meta.description is None

    def test_relative_urls_resolved_against_final_url(self) -> None:
        html = (
            '<link rel="canonical" href="/story/42">'
            '<meta property="og:image" content="img/cover.jpg">'
        )
        meta = extract_metadata(html, "https://example.com/news/index.html")

        assert meta.canonical_url == "https://example.com/story/42"
        assert meta.image_url == "https://example.com/news/img/cover.jpg"

    def test_unusable_urls_become_none(self) -> None:
        html = '<link rel="canonical" href="javascript:void(0)"><meta property="og:image" content="http://[bad">'
        meta = extract_metadata(html, "https://example.com/")

        assert meta.canonical_url is None
        assert meta.image_url is None

    def test_never_raises(self) -> None:
        with patch(
            "readvault.snapshot.metadata.BeautifulSoup", side_effect=RuntimeError("parser died")
        ):
            assert extract_metadata("<html>", "https://example.com/") == PageMetadata()


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

class TestTextHelpers:
    def test_short_text_unchanged(self) -> None:
        assert make_excerpt("  short text  ", 500) == "short text"

    def test_excerpt_prefers_word_boundary(self) -> None:
        text = "word " * 200
        excerpt = make_excerpt(text, 500)
        assert excerpt.endswith("word...")
        assert len(excerpt) <= 503

    def test_excerpt_hard_cut_without_late_space(self) -> None:
        text = "a" * 350 + " " + "b" * 300
        excerpt = make_excerpt(text, 500)
        assert excerpt == text[:500] + "..."

    def test_title_ratio(self) -> None:
        title = "one two three four five six seven eight nine ten eleven twelve"
        assert truncate_at_word(title, 50, 0.7) == "one two three four five six seven eight nine ten..."

    def test_cap_text(self) -> None:
        assert cap_text("abcdef", 3) == "abc..."
        assert cap_text("abc", 3) == "abc"

    def test_word_count(self) -> None:
        assert word_count("  one\ttwo\nthree  ") == 3

    def test_byline_date(self) -> None:
        assert format_byline_date(datetime(2026, 1, 5)) == "Jan 5, 2026"
