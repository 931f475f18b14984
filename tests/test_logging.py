"""Tests for session-based logging."""

import logging


class TestSetupLogging:
    def test_creates_session_file_and_symlink(self, tmp_path):
        from acpview.utils.logging import get_current_log_file, get_session_id, setup_logging

        log_file = setup_logging(level="DEBUG", log_dir=tmp_path)
        assert log_file.parent == tmp_path
        assert log_file.name.startswith("acpview_")
        assert log_file.name.endswith(f"_{get_session_id()}.log")
        assert get_current_log_file() == log_file

        logging.getLogger("acpview.acp.executor").info("query ran")
        for handler in logging.getLogger("acpview").handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "query ran" in text
        assert get_session_id() in text
        symlink = tmp_path / "acpview.log"
        if symlink.is_symlink():
            assert symlink.resolve() == log_file.resolve()

    def test_env_log_dir(self, tmp_path, monkeypatch):
        from acpview.utils.logging import get_log_directory

        monkeypatch.setenv("ACPVIEW_LOG_DIR", str(tmp_path / "elsewhere"))
        assert get_log_directory() == tmp_path / "elsewhere"

    def test_env_log_level(self, tmp_path, monkeypatch):
        from acpview.utils.logging import setup_logging

        monkeypatch.setenv("ACPVIEW_LOG_LEVEL", "WARNING")
        setup_logging(log_dir=tmp_path)
        assert logging.getLogger("acpview").level == logging.WARNING

    def test_get_logger_namespacing(self):
        from acpview.utils.logging import get_logger

        assert get_logger("acpview.cache").name == "acpview.cache"
        assert get_logger("cli").name == "acpview.cli"


class TestLogHelpers:
    def test_query_outcome(self, tmp_path):
        from acpview.utils.logging import log_query_outcome, setup_logging

        log_file = setup_logging(level="INFO", log_dir=tmp_path)
        logger = logging.getLogger("acpview.acp.executor")
        log_query_outcome(logger, "Medical Policy Goals", "error", 1, "error: not-found")
        log_query_outcome(logger, "ACP Forms", "success", 3)
        for handler in logging.getLogger("acpview").handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "Medical Policy Goals: error (error: not-found)" in text
        assert "ACP Forms: success (3 entries)" in text
