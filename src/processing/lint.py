"""Cookstyle invocation and JSON report parsing."""

from __future__ import annotations

import json
import shlex
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Tuple

from src.errors import LintToolError
from src.log import get_logger

from .commands import CommandRunner, run_cmd
from .context import RepoContext

logger = get_logger("processing.lint")

DEFAULT_LINT_COMMAND = "cookstyle"
DEFAULT_LINT_TIMEOUT = 300
REPORT_ARGS = ["--format", "json", "--display-cop-names"]
AUTOCORRECT_ARGS = ["--autocorrect-all"]
# 0 = clean, 1 = offenses found; anything else means cookstyle itself failed
EXPECTED_EXIT_CODES = {0, 1}


@dataclass(frozen=True)
class LintReport:
    auto_correctable_count: int = 0
    manual_count: int = 0
    pr_description: str = ""
    issue_description: str = ""
    error: bool = False
    error_message: str = ""

    @classmethod
    def failed(cls, message: str) -> "LintReport":
        """Error reports carry no counts and no descriptions."""
        return cls(error=True, error_message=message)

    @property
    def offense_count(self) -> int:
        return self.auto_correctable_count + self.manual_count

    @property
    def has_offenses(self) -> bool:
        return self.offense_count > 0

    def to_cache_result(self) -> str:
        return json.dumps(
            {
                "auto_correctable": self.auto_correctable_count,
                "manual": self.manual_count,
                "offense_count": self.offense_count,
            },
            sort_keys=True,
        )


def _one_line(message: Any) -> str:
    if not message:
        return "No message"
    return " ".join(part.strip() for part in str(message).splitlines() if part.strip())


def _offenses(parsed: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    for file_entry in parsed.get("files") or []:
        path = file_entry.get("path", "")
        for offense in file_entry.get("offenses") or []:
            yield path, offense


def count_offenses(parsed: Dict[str, Any]) -> Dict[str, int]:
    auto = manual = 0
    for _path, offense in _offenses(parsed):
        if offense.get("correctable"):
            auto += 1
        else:
            manual += 1
    return {"auto": auto, "manual": manual}


def format_pr_description(parsed: Dict[str, Any], auto: int, manual: int) -> str:
    lines = [
        "### Cookstyle Run Summary",
        "",
        f"- **Total Offenses Detected:** {auto + manual}",
        f"- **Auto-corrected:** {auto}",
        f"- **Manual Review Needed:** {manual}",
    ]
    if auto:
        lines.extend(["", "### Offences", ""])
        lines.extend(f"* {path}:{_one_line(offense.get('message'))}" for path, offense in _offenses(parsed))
    return "\n".join(lines)


def format_issue_description(parsed: Dict[str, Any], auto: int, manual: int) -> str:
    if not manual:
        return ""
    lines = [
        "### Cookstyle Manual Review Summary",
        "",
        f"- **Total Offenses Detected:** {auto + manual}",
        f"- **Manual Review Needed:** {manual}",
        "",
        "### Manual Intervention Required",
        "",
    ]
    lines.extend(
        f"* `{path}`:{offense.get('cop_name', 'Unknown')} - {_one_line(offense.get('message'))}"
        for path, offense in _offenses(parsed)
        if not offense.get("correctable")
    )
    return "\n".join(lines)


def parse_report(stdout: str) -> Dict[str, Any]:
    """Decode cookstyle JSON; raises LintToolError for anything we cannot trust."""
    if not stdout or not stdout.strip():
        raise LintToolError("cookstyle produced no output")
    try:
        parsed = json.loads(stdout)
    except ValueError as exc:
        raise LintToolError(f"cookstyle output is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict) or not parsed:
        raise LintToolError("cookstyle output is empty or not a JSON object")
    if not isinstance(parsed.get("files"), list):
        raise LintToolError("cookstyle output has no 'files' list")
    return parsed


class LintRunner:
    """Runs cookstyle in report mode, then in autocorrect mode when it helps.

    The report run's counts are the record; the autocorrect run only mutates
    the working tree.
    """

    def __init__(
        self,
        command: str = DEFAULT_LINT_COMMAND,
        timeout: float = DEFAULT_LINT_TIMEOUT,
        runner: CommandRunner = run_cmd,
    ) -> None:
        self.command: List[str] = shlex.split(command)
        self.timeout = timeout
        self.runner = runner

    def run(self, context: RepoContext) -> LintReport:
        try:
            parsed = parse_report(self._invoke(context, autocorrect=False))
        except LintToolError as exc:
            logger.error("[%s] Cookstyle failed: %s", context.repo_name, exc)
            return LintReport.failed(str(exc))

        counts = count_offenses(parsed)
        auto, manual = counts["auto"], counts["manual"]
        logger.info("[%s] Cookstyle found %s auto-correctable and %s manual offenses", context.repo_name, auto, manual)

        if auto > 0:
            try:
                self._invoke(context, autocorrect=True)
            except LintToolError as exc:
                logger.warning("[%s] Cookstyle autocorrect run failed: %s", context.repo_name, exc)

        return LintReport(
            auto_correctable_count=auto,
            manual_count=manual,
            pr_description=format_pr_description(parsed, auto, manual),
            issue_description=format_issue_description(parsed, auto, manual),
        )

    def _invoke(self, context: RepoContext, *, autocorrect: bool) -> str:
        cmd = [*self.command, *REPORT_ARGS]
        if autocorrect:
            cmd.extend(AUTOCORRECT_ARGS)
        try:
            result = self.runner(cmd, cwd=context.repo_dir, timeout_seconds=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise LintToolError(f"cookstyle timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise LintToolError(f"could not run cookstyle: {exc}") from exc

        if result.exit_code not in EXPECTED_EXIT_CODES:
            stderr = result.stderr.strip()[:500]
            raise LintToolError(f"cookstyle exited {result.exit_code}: {stderr}")
        return result.stdout


__all__ = [
    "DEFAULT_LINT_COMMAND",
    "DEFAULT_LINT_TIMEOUT",
    "LintReport",
    "LintRunner",
    "count_offenses",
    "format_issue_description",
    "format_pr_description",
    "parse_report",
]
