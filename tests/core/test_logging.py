"""Tests for aipipe.core.utils.logging."""

from loguru import logger

from aipipe.core.utils.logging import setup_logging


class TestSetupLogging:
    def test_file_sink(self, tmp_path):
        log_file = tmp_path / "aipipe.log"
        setup_logging(level="DEBUG", log_file=str(log_file))
        logger.debug("written to file")
        logger.remove()
        assert "written to file" in log_file.read_text()

    def test_level_filters(self, tmp_path):
        log_file = tmp_path / "aipipe.log"
        setup_logging(level="WARNING", log_file=str(log_file))
        logger.info("too quiet")
        logger.warning("loud enough")
        logger.remove()
        text = log_file.read_text()
        assert "too quiet" not in text
        assert "loud enough" in text

    def test_env_overrides_level(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AIPIPE_LOG_LEVEL", "debug")
        log_file = tmp_path / "aipipe.log"
        assert setup_logging(level="WARNING", log_file=str(log_file)) == "DEBUG"
        logger.debug("now visible")
        logger.remove()
        assert "now visible" in log_file.read_text()
