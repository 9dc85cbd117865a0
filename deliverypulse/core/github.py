"""GitHub slug utilities."""

from __future__ import annotations

from deliverypulse.exceptions import ConfigError


def parse_repo_slug(value: str) -> tuple[str, str]:
    """Extract (owner, name) from an ``owner/name`` slug or a GitHub URL.

    Raises ConfigError if the value cannot be parsed.
    """
    result = _extract_owner_repo(value)
    if result is None:
        raise ConfigError(f"invalid repo slug: {value!r}")
    owner, name = result.split("/", 1)
    return owner, name


def _extract_owner_repo(value: str) -> str | None:
    """Extract 'owner/name' from a slug or GitHub URL.

    Handles:
      - owner/name
      - https://github.com/owner/name
      - https://github.com/owner/name.git
      - git@github.com:owner/name.git
    """
    value = value.strip().rstrip("/")
    if value.endswith(".git"):
        value = value[:-4]

    # SSH format: git@github.com:owner/name
    if value.startswith("git@"):
        colon_idx = value.find(":")
        if colon_idx == -1:
            return None
        value = value[colon_idx + 1 :]
    elif "://" in value:
        value = value.split("://", 1)[1]
        # drop the host
        if "/" not in value:
            return None
        value = value.split("/", 1)[1]

    parts = value.split("/")
    if len(parts) == 2 and all(parts):
        return f"{parts[0]}/{parts[1]}"
    return None
