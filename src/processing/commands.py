"""Subprocess helper shared by the git and cookstyle wrappers."""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from src.github.auth import redact_url
from src.log import get_logger

logger = get_logger("processing.commands")


@dataclass(frozen=True)
class CmdResult:
    exit_code: int
    elapsed_seconds: float
    command_str: str
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_cmd(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    timeout_seconds: float = 0,
    env: Optional[Dict[str, str]] = None,
) -> CmdResult:
    """Run a subprocess and capture stdout/stderr (no ``shell=True``).

    Never raises on non-zero exit codes. Raises ``subprocess.TimeoutExpired``
    when ``timeout_seconds`` elapses and ``OSError`` when the binary is missing.
    """
    t0 = time.time()

    env2 = None
    if env is not None:
        env2 = os.environ.copy()
        env2.update(env)

    command_str = redact_url(" ".join(cmd))
    logger.debug("$ %s (cwd=%s)", command_str, cwd or ".")
    proc = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        text=True,
        capture_output=True,
        timeout=timeout_seconds if timeout_seconds and timeout_seconds > 0 else None,
        env=env2,
    )
    elapsed = time.time() - t0

    return CmdResult(
        exit_code=proc.returncode,
        elapsed_seconds=elapsed,
        command_str=command_str,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


CommandRunner = Callable[..., CmdResult]

__all__ = ["CmdResult", "CommandRunner", "run_cmd"]
