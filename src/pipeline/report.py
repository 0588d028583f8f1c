"""Render run summaries, repository lists, and cache status as text, JSON, or tables."""

from __future__ import annotations

import io
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from rich.console import Console
from rich.table import Table

from src.github.discovery import repo_name_from_url
from src.processing.outcomes import AggregateResult

TABLE_WIDTH = 120


def _render_tables(tables: Iterable[Table]) -> str:
    buffer = io.StringIO()
    console = Console(file=buffer, width=TABLE_WIDTH, force_terminal=False, color_system=None)
    for table in tables:
        console.print(table)
    return buffer.getvalue().rstrip("\n")


def _titled_table(title: str) -> Table:
    # rich wraps a title wider than the table onto several lines
    return Table(title=title, min_width=len(title) + 4)


def _metric_table(title: str, metrics: Mapping[str, Any]) -> Table:
    table = _titled_table(title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in metrics.items():
        table.add_row(key, str(value))
    return table


def summary_metrics(result: AggregateResult) -> Dict[str, int]:
    return {
        "Total repositories considered": result.total,
        "Successfully processed": result.processed,
        "Found issues in": result.issues_found,
        "Skipped": result.skipped,
        "Errors": result.errors,
        "Retries": result.retries,
        "Issues Created": result.issues_created,
        "Pull Requests Created": result.prs_created,
        "Issue Creation Errors": result.issue_errors,
        "PR Creation Errors": result.pr_errors,
    }


def _render_text(result: AggregateResult, stats: Optional[Mapping[str, Any]]) -> str:
    lines: List[str] = [
        "--- Summary ---",
        f"Total repositories considered: {result.total}",
        f"Successfully processed: {result.processed}",
        f"Found issues in: {result.issues_found} repositories.",
        f"Skipped: {result.skipped} repositories.",
        f"Errors: {result.errors} repositories.",
        f"Retries: {result.retries}",
        "",
        "--- Artifact Creation ---",
        f"Issues Created: {result.issues_created}",
        f"Pull Requests Created: {result.prs_created}",
        f"Issue Creation Errors: {result.issue_errors}",
        f"PR Creation Errors: {result.pr_errors}",
    ]

    if result.artifacts:
        lines.extend(["", f"--- Created Artifacts ({len(result.artifacts)}) ---"])
        for artifact in result.artifacts:
            lines.extend(
                [
                    f"Repository: {artifact.repo}",
                    f"Artifact #{artifact.number}: {artifact.title}",
                    f"Type: {artifact.kind}{'' if artifact.created else ' (updated)'}",
                    f"URL: {artifact.url}",
                ]
            )

    if result.artifact_errors:
        lines.extend(["", f"--- Artifact Creation Errors ({len(result.artifact_errors)}) ---"])
        for error in result.artifact_errors:
            lines.extend([f"Repository: {error.repo}", f"Error: {error.message}", f"Type: {error.kind}"])

    failed = [outcome for outcome in result.outcomes if outcome.is_error]
    if failed:
        lines.extend(["", f"--- Failed Repositories ({len(failed)}) ---"])
        lines.extend(f"{outcome.repo_name}: {outcome.message}" for outcome in failed)

    if stats:
        lines.extend(
            [
                "",
                "--- Cache ---",
                f"Cache Hits: {stats.get('cache_hits', 0)}",
                f"Cache Misses: {stats.get('cache_misses', 0)}",
                f"Cache Updates: {stats.get('cache_updates', 0)}",
                f"Cache Hit Rate: {float(stats.get('cache_hit_rate', 0)):.2f}%",
                f"Estimated Time Saved: {stats.get('estimated_time_saved', 0)}s",
                f"Runtime: {stats.get('runtime', 0)}s",
            ]
        )
    return "\n".join(lines)


def _render_table(result: AggregateResult, stats: Optional[Mapping[str, Any]]) -> str:
    tables = [_metric_table("Summary", summary_metrics(result))]

    if result.artifacts:
        artifacts = _titled_table(f"Created Artifacts ({len(result.artifacts)})")
        for column in ("Repository", "Type", "Number", "Title", "URL"):
            artifacts.add_column(column)
        for artifact in result.artifacts:
            artifacts.add_row(artifact.repo, artifact.kind, f"#{artifact.number}", artifact.title, artifact.url)
        tables.append(artifacts)

    if result.artifact_errors:
        errors = _titled_table(f"Artifact Creation Errors ({len(result.artifact_errors)})")
        for column in ("Repository", "Type", "Error"):
            errors.add_column(column)
        for error in result.artifact_errors:
            errors.add_row(error.repo, error.kind, error.message)
        tables.append(errors)

    if stats:
        tables.append(_metric_table("Cache", stats))
    return _render_tables(tables)


def render_report(result: AggregateResult, stats: Optional[Mapping[str, Any]] = None, fmt: str = "text") -> str:
    """Render the final run summary; ``fmt`` is one of text, json, table."""
    if fmt == "json":
        payload: Dict[str, Any] = {"summary": result.to_dict()}
        if stats is not None:
            payload["cache"] = dict(stats)
        return json.dumps(payload, indent=2)
    if fmt == "table":
        return _render_table(result, stats)
    if fmt == "text":
        return _render_text(result, stats)
    raise ValueError(f"unknown output format: {fmt}")


def render_repositories(repo_urls: List[str], fmt: str = "text") -> str:
    names = [repo_name_from_url(url) for url in repo_urls]
    if fmt == "json":
        return json.dumps({"repositories": repo_urls}, indent=2)
    if not names:
        return "No repositories found matching criteria"
    if fmt == "table":
        table = _titled_table(f"Found {len(names)} repositories")
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Repository")
        for index, name in enumerate(names, start=1):
            table.add_row(str(index), name)
        return _render_tables([table])
    lines = [f"Found {len(names)} repositories:"]
    lines.extend(f"  {index}. {name}" for index, name in enumerate(names, start=1))
    return "\n".join(lines)


def render_mapping(title: str, values: Mapping[str, Any], fmt: str = "text") -> str:
    """Key/value sections used by the ``config`` and ``status`` commands."""
    if fmt == "json":
        return json.dumps(dict(values), indent=2, default=str)
    if fmt == "table":
        return _render_tables([_metric_table(title, values)])
    lines = [f"{title}:"]
    for key, value in values.items():
        shown = (", ".join(str(item) for item in value) or "none") if isinstance(value, (list, tuple)) else value
        lines.append(f"  {key.ljust(30)}: {shown}")
    return "\n".join(lines)


__all__ = [
    "render_mapping",
    "render_report",
    "render_repositories",
    "summary_metrics",
]
