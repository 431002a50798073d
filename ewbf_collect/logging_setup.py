"""Logging helpers for ewbf-collect.

- Avoids duplicate handlers when setup runs more than once.
- Installs console and/or rotating file handlers according to log_mode.
- Routes uncaught faults (main and worker threads) into the log.
"""

from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import AppConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("ewbf_collect")


def _find_rotating_file_handler(logger: logging.Logger, log_path: Path) -> Optional[RotatingFileHandler]:
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler):
            # RotatingFileHandler keeps the path in baseFilename
            if Path(getattr(h, "baseFilename", "")).resolve() == log_path.resolve():
                return h
    return None


def _find_console_handler(logger: logging.Logger) -> Optional[logging.StreamHandler]:
    for h in logger.handlers:
        # FileHandler is a StreamHandler subclass; exclude it so we don't mistake file handler as console.
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            return h
    return None


# winston-style names some existing configs still carry
_LEVEL_ALIASES = {"verbose": "DEBUG", "silly": "DEBUG", "warn": "WARNING"}


def parse_level(name: str) -> int:
    name = str(name).strip().lower()
    level = logging.getLevelName(_LEVEL_ALIASES.get(name, name.upper()))
    return level if isinstance(level, int) else logging.INFO


def setup_logging(cfg: AppConfig) -> Optional[Path]:
    """Configure the root logger from cfg.log_mode / log_level / log_file.

    Returns the log file path when a file transport is active.
    """
    level = parse_level(cfg.log_level)
    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    log_file: Optional[Path] = None
    if cfg.log_mode in ("file", "both"):
        log_file = Path(cfg.log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # rotate ~10MB, keep 5 backups
        fh = _find_rotating_file_handler(root, log_file)
        if fh is None:
            fh = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            fh.setFormatter(fmt)
            root.addHandler(fh)
        fh.setLevel(level)

    if cfg.log_mode in ("console", "both"):
        ch = _find_console_handler(root)
        if ch is None:
            ch = logging.StreamHandler()
            ch.setFormatter(fmt)
            root.addHandler(ch)
        ch.setLevel(level)

    # Third-party chatter stays at WARNING unless we are debugging
    logging.getLogger("urllib3").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return log_file


def install_fault_hooks() -> None:
    """Log uncaught exceptions instead of letting them vanish on stderr.

    The process is not restarted or exited by these hooks.
    """

    def _excepthook(exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        logger.error("Uncaught exception", exc_info=(exc_type, exc, tb))

    def _thread_excepthook(args):
        if args.exc_type is SystemExit:
            return
        name = args.thread.name if args.thread is not None else "?"
        logger.error(
            "Uncaught exception in thread %s",
            name,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook
