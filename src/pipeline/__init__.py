"""Command-line pipeline: settings resolution, run orchestration, and reporting."""

from .config import RunnerSettings, resolve_settings

__all__ = ["RunnerSettings", "resolve_settings"]
