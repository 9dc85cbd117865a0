"""Tests for bot author detection."""

from deliverypulse.engines.collector.bots import (
    DEFAULT_BOT_AUTHOR_PATTERNS,
    is_bot_author,
    normalize_bot_patterns,
)


class TestIsBotAuthor:
    def test_bot_suffix_regardless_of_patterns(self):
        assert is_bot_author("dependabot[bot]", DEFAULT_BOT_AUTHOR_PATTERNS) is True
        assert is_bot_author("dependabot[bot]", ()) is True
        assert is_bot_author("Renovate[BOT]", ()) is True

    def test_matches_configured_substrings(self):
        assert is_bot_author("github-actions", DEFAULT_BOT_AUTHOR_PATTERNS) is True
        assert is_bot_author("semantic-release-bot", DEFAULT_BOT_AUTHOR_PATTERNS) is True
        assert is_bot_author("Snyk-Bot", DEFAULT_BOT_AUTHOR_PATTERNS) is True

    def test_human_authors(self):
        assert is_bot_author("alice", DEFAULT_BOT_AUTHOR_PATTERNS) is False
        assert is_bot_author("bob-smith", DEFAULT_BOT_AUTHOR_PATTERNS) is False

    def test_custom_patterns(self):
        patterns = normalize_bot_patterns(["Auto-Merge"])
        assert is_bot_author("auto-merge-bot", patterns) is True
        assert is_bot_author("renovate[bot]", patterns) is True
        assert is_bot_author("renovate", patterns) is False

    def test_missing_login(self):
        assert is_bot_author(None) is False
        assert is_bot_author("") is False


class TestNormalizeBotPatterns:
    def test_lowercases_and_drops_empty(self):
        assert normalize_bot_patterns(["Foo", "", "BAR"]) == ("foo", "bar")
