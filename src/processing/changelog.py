"""Insert an auto-correction note into a repository's changelog."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import List, Optional

from src.log import get_logger

logger = get_logger("processing.changelog")

DEFAULT_CHANGELOG_LOCATION = "CHANGELOG.md"
DEFAULT_CHANGELOG_MARKER = "## Unreleased"


def changelog_entry(today: Optional[dt.date] = None) -> str:
    day = today or dt.datetime.now(dt.timezone.utc).date()
    return f"- Cookstyle auto-corrections applied on {day.isoformat()}"


def insert_entry(lines: List[str], marker: str, entry: str) -> Optional[List[str]]:
    """Return ``lines`` with ``entry`` placed at the end of the marker's section.

    The section ends at the next ``## `` header or at end of file. Returns None
    when the marker is absent.
    """
    marker = marker.strip()
    marker_index = next((i for i, line in enumerate(lines) if line.strip().startswith(marker)), None)
    if marker_index is None:
        return None

    insertion_point = next(
        (i for i in range(marker_index + 1, len(lines)) if lines[i].strip().startswith("## ")),
        len(lines),
    )
    updated = list(lines)
    if insertion_point == len(lines):
        if not updated[-1].endswith("\n"):
            updated[-1] += "\n"
        updated.append(f"{entry.strip()}\n")
    else:
        updated[insertion_point:insertion_point] = [f"{entry.strip()}\n", "\n"]
    return updated


def update_changelog(
    repo_dir: Path,
    location: str = DEFAULT_CHANGELOG_LOCATION,
    marker: str = DEFAULT_CHANGELOG_MARKER,
    entry: Optional[str] = None,
) -> bool:
    """Write the entry under ``marker`` in ``repo_dir/location``; False when skipped."""
    path = Path(repo_dir) / location
    if not path.is_file():
        logger.warning("Changelog file not found at %s, skipping update", path)
        return False

    try:
        lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
        updated = insert_entry(lines, marker, entry or changelog_entry())
        if updated is None:
            logger.warning("Changelog marker '%s' not found in %s, skipping update", marker, path)
            return False
        path.write_text("".join(updated), encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to update changelog %s: %s", path, exc)
        return False

    logger.info("Updated changelog file: %s", path)
    return True


__all__ = [
    "DEFAULT_CHANGELOG_LOCATION",
    "DEFAULT_CHANGELOG_MARKER",
    "changelog_entry",
    "insert_entry",
    "update_changelog",
]
