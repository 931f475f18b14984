"""Helpers shared by the CLI and the sync engine."""

from .logging import (
    get_current_log_file,
    get_logger,
    get_session_id,
    log_query_outcome,
    log_resolution_pass,
    log_sync_start,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_log_file",
    "get_session_id",
    "log_sync_start",
    "log_query_outcome",
    "log_resolution_pass",
]
