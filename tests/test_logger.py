"""Tests for logging setup."""

import logging

from rich.logging import RichHandler

from wralph.utils.logger import enable_verbose_logging, get_logger


class TestLogger:
    """Test wralph loggers."""

    def test_module_loggers_share_root_handlers(self):
        logger = get_logger("wralph.workflows.ci_loop")
        root_logger = logging.getLogger("wralph")

        assert isinstance(logger, logging.Logger)
        assert logger.propagate
        assert not logger.handlers
        assert any(isinstance(handler, RichHandler) for handler in root_logger.handlers)

    def test_verbose_logging_lowers_console_level(self):
        root_logger = logging.getLogger("wralph")
        console_handlers = [h for h in root_logger.handlers if isinstance(h, RichHandler)]
        previous = [h.level for h in console_handlers]

        try:
            enable_verbose_logging()
            assert all(h.level == logging.DEBUG for h in console_handlers)
        finally:
            for handler, level in zip(console_handlers, previous):
                handler.setLevel(level)
