"""Run the cookstyle runner from a source checkout: ``python run_pipeline.py run [repo ...]``."""

from __future__ import annotations

import sys

from src.pipeline.runner import main


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
