"""Utility helpers for the Doarama client.

Currently contains the logging configuration helper used by the CLI.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(log_file: Optional[Path | str] = None, level: int = logging.INFO, verbose: bool = False) -> None:
    """Configure the root logger for console and, optionally, file output.

    The console only shows warnings and errors unless ``verbose`` is set; the
    log file, when given, receives everything at ``level`` and is appended to.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else level)

    # Remove existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(ch)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(fmt)
        fh.setLevel(logging.DEBUG if verbose else level)
        root.addHandler(fh)

    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
