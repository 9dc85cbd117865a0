"""Per-repository JSON artifacts on disk."""

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from deliverypulse.engines.collector.models import RepoConfig, format_datetime

log = structlog.get_logger("deliverypulse.collector")

METADATA_FILE = "metadata.json"
EVENTS_FILE = "events.json"
PULL_REQUESTS_FILE = "pull-requests.json"

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_\-]")


class ArtifactStore:
    """Reads and writes the three JSON artifacts of each repository.

    Writes go to a ``.tmp`` sibling first and are renamed into place, so a
    crash never leaves a half-written artifact behind.
    """

    def __init__(self, output_dir: str | os.PathLike[str]) -> None:
        self.output_dir = Path(output_dir)

    def repo_dir(self, repo: RepoConfig) -> Path:
        safe = f"{_UNSAFE_RE.sub('_', repo.owner)}__{_UNSAFE_RE.sub('_', repo.name)}"
        return self.output_dir / safe

    def path(self, repo: RepoConfig, filename: str) -> Path:
        return self.repo_dir(repo) / filename

    def read(self, repo: RepoConfig, filename: str) -> dict[str, Any] | None:
        """Return the parsed artifact, or None if it does not exist."""
        target = self.path(repo, filename)
        if not target.exists():
            return None
        with open(target, encoding="utf-8") as fh:
            return json.load(fh)

    def write(self, repo: RepoConfig, filename: str, payload: dict[str, Any]) -> Path:
        target = self.path(repo, filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
            fh.write("\n")
        os.replace(tmp, target)
        log.debug("storage.written", path=str(target))
        return target


def fetched_at() -> str:
    return format_datetime(datetime.now(timezone.utc))
