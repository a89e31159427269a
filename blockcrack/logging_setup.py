"""Central logging configuration helpers."""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from . import config

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_CONFIGURED = False


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None) -> None:
    """Configure the root logger once with a console and optional file handler."""

    global _CONFIGURED
    root = logging.getLogger()
    if _CONFIGURED:
        root.setLevel(level)
        return

    root.setLevel(level)
    fmt = logging.Formatter(_DEFAULT_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    log_dir = log_dir if log_dir is not None else config.LOG_DIR
    if log_dir:
        path = Path(log_dir).resolve() / "blockcrack.log"
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            path.as_posix(), when="midnight", backupCount=7, encoding="utf-8"
        )
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    _CONFIGURED = True


__all__ = ["setup_logging"]
