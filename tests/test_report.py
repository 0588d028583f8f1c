"""Tests for summary rendering in src.pipeline.report.

Run with:
    pytest tests/test_report.py --maxfail=1 -v --cov=src.pipeline.report --cov-report=term-missing
"""

import json

import pytest

from src.github.pr_manager import ISSUE, PULL_REQUEST, ArtifactRef
from src.pipeline import report
from src.processing.outcomes import AggregateResult, ArtifactError, ProcessingOutcome

STATS = {
    "cache_hits": 2,
    "cache_misses": 1,
    "cache_updates": 1,
    "cache_hit_rate": 66.67,
    "estimated_time_saved": 8.5,
    "runtime": 12.3,
}


def _result():
    result = AggregateResult()
    pr = ArtifactRef(kind=PULL_REQUEST, repo="acme/a", number=3, url="https://github.com/acme/a/pull/3",
                     title="Cookstyle Automated Fixes")
    issue = ArtifactRef(kind=ISSUE, repo="acme/b", number=4, url="https://github.com/acme/b/issues/4",
                        title="Manual Cookstyle Fixes Required", created=False)
    result.add(ProcessingOutcome.issues_found("a", artifact=pr))
    result.add(ProcessingOutcome.issues_found("b", artifact=issue, attempts=2))
    result.add(ProcessingOutcome.issues_found(
        "c", artifact_error=ArtifactError(kind=PULL_REQUEST, repo="acme/c", message="HTTP 422")))
    result.add(ProcessingOutcome.no_issues("d"))
    result.add(ProcessingOutcome.skipped("e", "unchanged"))
    result.add(ProcessingOutcome.error("f", "cookstyle failed: timed out", attempts=4))
    return result


def test_text_report_sections():
    text = report.render_report(_result(), STATS, "text")
    assert "--- Summary ---" in text
    assert "Total repositories considered: 6" in text
    assert "Successfully processed: 4" in text
    assert "Found issues in: 3 repositories." in text
    assert "Retries: 4" in text
    assert "Pull Requests Created: 1" in text
    assert "Issues Created: 1" in text
    assert "PR Creation Errors: 1" in text
    assert "--- Created Artifacts (2) ---" in text
    assert "Type: issue (updated)" in text
    assert "--- Artifact Creation Errors (1) ---" in text
    assert "--- Failed Repositories (1) ---" in text
    assert "f: cookstyle failed: timed out" in text
    assert "Cache Hit Rate: 66.67%" in text


def test_text_report_omits_empty_sections():
    text = report.render_report(AggregateResult())
    assert "--- Artifact Creation ---" in text
    assert "Created Artifacts" not in text
    assert "Failed Repositories" not in text
    assert "--- Cache ---" not in text


def test_json_report():
    payload = json.loads(report.render_report(_result(), STATS, "json"))
    assert payload["summary"]["total"] == 6
    assert payload["summary"]["prs_created"] == 1
    assert payload["summary"]["outcomes"][4]["reason"] == "unchanged"
    assert payload["cache"]["cache_hits"] == 2


def test_table_report_lists_metrics():
    table = report.render_report(_result(), STATS, "table")
    assert "Pull Requests Created" in table
    assert "Created Artifacts (2)" in table
    assert "HTTP 422" in table
    assert "cache_hit_rate" in table


def test_unknown_format_raises():
    with pytest.raises(ValueError):
        report.render_report(AggregateResult(), fmt="xml")


def test_summary_metrics():
    metrics = report.summary_metrics(_result())
    assert metrics["Skipped"] == 1
    assert metrics["Errors"] == 1


def test_render_repositories():
    urls = ["https://github.com/acme/a.git", "https://github.com/acme/b.git"]
    assert report.render_repositories(urls) == "Found 2 repositories:\n  1. a\n  2. b"
    assert report.render_repositories([]) == "No repositories found matching criteria"
    assert json.loads(report.render_repositories(urls, "json")) == {"repositories": urls}
    assert "Found 2 repositories" in report.render_repositories(urls, "table")


def test_render_mapping():
    text = report.render_mapping("Cache Status", {"total_repositories": 3, "topics": [], "labels": ["a", "b"]})
    assert text.splitlines()[0] == "Cache Status:"
    assert "total_repositories" in text and ": 3" in text
    assert ": none" in text
    assert ": a, b" in text
    assert json.loads(report.render_mapping("x", {"k": 1}, "json")) == {"k": 1}
    assert "Cache Status" in report.render_mapping("Cache Status", {"k": 1}, "table")


def test_table_titles_stay_on_one_line_for_narrow_tables():
    listing = report.render_repositories(["https://github.com/acme/a.git"], "table")
    assert listing.splitlines()[0].strip() == "Found 1 repositories"
    mapping = report.render_mapping("Cookstyle Runner Configuration", {"k": 1}, "table")
    assert mapping.splitlines()[0].strip() == "Cookstyle Runner Configuration"
