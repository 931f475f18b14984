"""
Session logging for ACPVIEW.

Every CLI invocation writes its own log file so a sync can be traced after
the fact: which queries ran against which server, what each one returned,
how many reference passes were needed and which references failed.

Files
-----
``~/.acpview/logs/acpview_YYYYMMDD_HHMMSS_<session>.log``, one per run.
``acpview.log`` in the same directory links to the newest one.

Environment
-----------
``ACPVIEW_LOG_DIR``    directory for log files
``ACPVIEW_LOG_LEVEL``  DEBUG, INFO (default), WARNING or ERROR

Modules log through ``logging.getLogger(__name__)``; nothing is written
until an entry point calls :func:`setup_logging`.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "acpview"
DEFAULT_LOG_DIR = Path.home() / ".acpview" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
LATEST_LINK = "acpview.log"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(session_id)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-7s [%(session_id)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class _Session:
    session_id: str
    log_file: Path
    level: str


_current: Optional[_Session] = None


class _SessionFormatter(logging.Formatter):
    """Stamps each record with the active session id before formatting."""

    def format(self, record: logging.LogRecord) -> str:
        record.session_id = _current.session_id if _current else "-"  # type: ignore[attr-defined]
        return super().format(record)


def generate_session_id() -> str:
    return uuid.uuid4().hex[:6]


def get_log_directory() -> Path:
    """``ACPVIEW_LOG_DIR`` if set, else ``~/.acpview/logs``."""
    override = os.getenv("ACPVIEW_LOG_DIR")
    return Path(override) if override else DEFAULT_LOG_DIR


def generate_log_filename(session_id: str) -> str:
    return f"acpview_{datetime.now():%Y%m%d_%H%M%S}_{session_id}.log"


def _refresh_latest_link(log_dir: Path, log_file: Path) -> None:
    link = log_dir / LATEST_LINK
    try:
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(log_file.name)
    except OSError:
        # no symlink support (e.g. Windows without developer mode)
        pass


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
    quiet: bool = False,
) -> Path:
    """Start a new logging session and return its log file.

    Handlers from an earlier session are closed and replaced, so calling
    this again (as the test-suite does) starts a fresh file.

    Parameters
    ----------
    level:
        Log level name; falls back to ``ACPVIEW_LOG_LEVEL``, then INFO.
    log_dir:
        Where to write; falls back to :func:`get_log_directory`.
    console_output:
        Mirror records to stderr.
    quiet:
        Suppress the stderr mirror even if *console_output* is set.
    """
    global _current

    level = (level or os.getenv("ACPVIEW_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    numeric = getattr(logging, level, logging.INFO)

    log_dir = log_dir or get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)
    session_id = generate_session_id()
    log_file = log_dir / generate_log_filename(session_id)
    _current = _Session(session_id=session_id, log_file=log_file, level=level)

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(numeric)
    root.propagate = False

    handlers: list[logging.Handler] = [logging.FileHandler(log_file, encoding="utf-8")]
    handlers[0].setFormatter(_SessionFormatter(FILE_FORMAT, DATE_FORMAT))
    if console_output and not quiet:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(_SessionFormatter(CONSOLE_FORMAT, DATE_FORMAT))
        handlers.append(stream)
    for handler in handlers:
        handler.setLevel(numeric)
        root.addHandler(handler)

    _refresh_latest_link(log_dir, log_file)
    root.info("session %s started (level %s, file %s)", session_id, level, log_file)
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``acpview`` namespace. Never touches the filesystem."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def is_logging_initialised() -> bool:
    return _current is not None


def get_current_log_file() -> Optional[Path]:
    return _current.log_file if _current else None


def get_session_id() -> Optional[str]:
    return _current.session_id if _current else None


# ---------------------------------------------------------------------------
# Structured records for the sync engine
# ---------------------------------------------------------------------------


def log_sync_start(logger: logging.Logger, patient_id: str, server_url: str, query_count: int) -> None:
    logger.info("sync Patient/%s from %s (%d queries)", patient_id, server_url, query_count)


def log_query_outcome(
    logger: logging.Logger,
    title: str,
    status: str,
    entries: int,
    error: Optional[str] = None,
) -> None:
    """One line per executed query; failures at WARNING."""
    if error:
        logger.warning("%s: %s (%s)", title, status, error)
    else:
        logger.info("%s: %s (%d entries)", title, status, entries)


def log_resolution_pass(logger: logging.Logger, iteration: int, pending: int, fetched: int) -> None:
    logger.info("reference pass %d: %d pending, %d fetched", iteration, pending, fetched)
