"""Bot author detection for pull-request metrics."""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_BOT_AUTHOR_PATTERNS: tuple[str, ...] = (
    "dependabot",
    "renovate",
    "github-actions",
    "release-please",
    "semantic-release",
    "stale",
    "snyk",
    "greenkeeper",
    "allstar",
    "automation-bot",
)


def normalize_bot_patterns(patterns: Iterable[str]) -> tuple[str, ...]:
    return tuple(p.lower() for p in patterns if p)


def is_bot_author(
    login: str | None, patterns: Iterable[str] = DEFAULT_BOT_AUTHOR_PATTERNS
) -> bool:
    """Return True if *login* looks like an automation account.

    Logins with the ``[bot]`` suffix are always bots; otherwise the login
    is checked for any pattern as a case-insensitive substring.
    """
    if not login:
        return False
    normalized = login.lower()
    if normalized.endswith("[bot]"):
        return True
    return any(p.lower() in normalized for p in patterns if p)
