from __future__ import annotations

import logging
import sys


class _AppNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - all application logs (src.*)
    - uvicorn startup/access lines at INFO+
    - any other 3rd party only at WARNING+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("src."):
            return True

        if name.startswith("uvicorn"):
            return record.levelno >= logging.INFO

        return record.levelno >= logging.WARNING


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure the root logger with a single stderr handler.

    Call this ONCE, before the server starts.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_AppNoiseFilter())
    root.addHandler(ch)

    logging.captureWarnings(True)
