from __future__ import annotations

import logging
import os

from .app import run

LOG_LEVEL_ENV = "QUIZ_BATTLE_LOG_LEVEL"


def configure_logging() -> None:
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    """Entry point for running the battle from the command line (``python -m quiz_battle``)."""
    configure_logging()
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
