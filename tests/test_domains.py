"""Tests for the ordered domain-extractor registry."""

from __future__ import annotations

from readvault.snapshot.domains import DOMAIN_HANDLERS, find_extractor, find_handler
from readvault.snapshot.domains.reddit import extract_reddit
from readvault.snapshot.domains.twitter import extract_tweet


class TestRegistry:
    def test_handler_order(self) -> None:
        assert [h.name for h in DOMAIN_HANDLERS] == ["twitter", "reddit"]

    def test_twitter_status_url(self) -> None:
        assert find_extractor("https://x.com/jack/status/20") is extract_tweet
        assert find_handler("https://twitter.com/jack/status/20").name == "twitter"

    def test_reddit_urls(self) -> None:
        assert find_extractor("https://www.reddit.com/r/python/") is extract_reddit
        assert find_extractor("https://redd.it/abc123") is extract_reddit

    def test_unclaimed_urls(self) -> None:
        assert find_extractor("https://example.com/article") is None
        assert find_extractor("https://x.com/jack") is None
        assert find_handler("https://notreddit.com/r/python") is None
