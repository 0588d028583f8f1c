"""Tests for changelog insertion in src.processing.changelog.

Run with:
    pytest tests/test_changelog.py --maxfail=1 -v --cov=src.processing.changelog --cov-report=term-missing
"""

import datetime as dt

from src.processing import changelog

ENTRY = "- Cookstyle auto-corrections applied on 2024-05-01"


def test_changelog_entry_uses_given_date():
    assert changelog.changelog_entry(dt.date(2024, 5, 1)) == ENTRY


def test_insert_before_next_section():
    lines = ["# Changelog\n", "\n", "## Unreleased\n", "- existing\n", "\n", "## 1.0.0\n", "- old\n"]
    updated = changelog.insert_entry(lines, "## Unreleased", ENTRY)
    assert updated == [
        "# Changelog\n", "\n", "## Unreleased\n", "- existing\n", "\n",
        f"{ENTRY}\n", "\n",
        "## 1.0.0\n", "- old\n",
    ]
    assert lines[5] == "## 1.0.0\n"


def test_insert_at_end_of_file_adds_missing_newline():
    updated = changelog.insert_entry(["## Unreleased\n", "- existing"], "## Unreleased", ENTRY)
    assert updated == ["## Unreleased\n", "- existing\n", f"{ENTRY}\n"]


def test_missing_marker_returns_none():
    assert changelog.insert_entry(["# Changelog\n"], "## Unreleased", ENTRY) is None


def test_update_changelog_writes_file(tmp_path):
    path = tmp_path / "CHANGELOG.md"
    path.write_text("# Changelog\n\n## Unreleased\n\n## 0.1.0\n- first\n", encoding="utf-8")
    assert changelog.update_changelog(tmp_path, entry=ENTRY) is True
    text = path.read_text(encoding="utf-8")
    assert text.index(ENTRY) < text.index("## 0.1.0")
    assert text.index("## Unreleased") < text.index(ENTRY)


def test_update_changelog_custom_location_and_marker(tmp_path):
    (tmp_path / "docs").mkdir()
    path = tmp_path / "docs" / "HISTORY.md"
    path.write_text("## Next\n", encoding="utf-8")
    assert changelog.update_changelog(tmp_path, "docs/HISTORY.md", "## Next", ENTRY) is True
    assert path.read_text(encoding="utf-8") == f"## Next\n{ENTRY}\n"


def test_update_changelog_skips_missing_file_or_marker(tmp_path):
    assert changelog.update_changelog(tmp_path) is False
    (tmp_path / "CHANGELOG.md").write_text("# Changelog\n", encoding="utf-8")
    assert changelog.update_changelog(tmp_path) is False
    assert (tmp_path / "CHANGELOG.md").read_text(encoding="utf-8") == "# Changelog\n"
