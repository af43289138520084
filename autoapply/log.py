"""Logging setup shared by every module in the agent.

Modules only ever call ``get_logger``; the first call installs a console
handler and a daily file under ``logs/``. Entry points that know better
(the CLI's ``--log-level``, tests) call ``configure_logging`` directly,
which replaces whatever this module installed earlier.

Environment knobs: ``LOG_LEVEL``, ``AUTOAPPLY_LOG_DIR`` and
``AUTOAPPLY_LOG_FILE`` (set to ``0`` to keep logs on stdout only).
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
NOISY_LOGGERS = ("urllib3", "httpx", "openai", "playwright")

_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_TRUTHY = ("1", "true", "yes", "on")

_configured = False
_installed: list[logging.Handler] = []


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def log_file_for(log_dir: Path, day: Optional[date] = None) -> Path:
    return log_dir / f"autoapply_{(day or date.today()).isoformat()}.log"


def _drop_installed(root: logging.Logger) -> None:
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()


def configure_logging(
    level: int | str | None = None,
    log_dir: str | Path | None = None,
    *,
    to_file: Optional[bool] = None,
) -> Optional[Path]:
    """(Re)install the agent's root handlers and return the log file path, if any.

    Handlers added by someone else (pytest's capture, an embedding app) are
    left alone, and in that case no console handler is added on top of them.
    """
    global _configured
    resolved = _resolve_level(level)
    if to_file is None:
        to_file = os.environ.get("AUTOAPPLY_LOG_FILE", "true").lower() in _TRUTHY
    directory = Path(log_dir or os.environ.get("AUTOAPPLY_LOG_DIR") or DEFAULT_LOG_DIR)

    root = logging.getLogger()
    root.setLevel(resolved)
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(resolved, logging.WARNING))

    _drop_installed(root)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FMT)

    if not root.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(resolved)
        console.setFormatter(formatter)
        root.addHandler(console)
        _installed.append(console)

    log_file: Optional[Path] = None
    if to_file:
        try:
            directory.mkdir(parents=True, exist_ok=True)
            log_file = log_file_for(directory)
            fh = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            log_file = None
            root.warning("Log directory %s not writable, logging to stdout only", directory)
        else:
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(formatter)
            root.addHandler(fh)
            _installed.append(fh)

    _configured = True
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; the root handlers are installed on first use."""
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
