"""Tests for logging setup."""

from __future__ import annotations

import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from shipwright.log import EventFormatter, setup_logging


class TestEventFormatter:
    """Tests for EventFormatter."""

    def _record(self, **extra: object) -> logging.LogRecord:
        record = logging.LogRecord("shipwright.retry", logging.INFO, __file__, 1, "attempt 1/3", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_appends_event(self):
        formatter = EventFormatter("%(message)s")
        output = formatter.format(self._record(event="attempt_started", task_id="task-1"))
        assert output == "attempt 1/3 [attempt_started task=task-1]"

    def test_plain_message(self):
        assert EventFormatter("%(message)s").format(self._record()) == "attempt 1/3"


class TestSetupLogging:
    """Tests for setup_logging()."""

    def teardown_method(self):
        logger = logging.getLogger("shipwright")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    def test_rich_handler(self):
        console = Console(file=io.StringIO(), width=200)
        setup_logging("debug", rich=True, console=console)

        logger = logging.getLogger("shipwright")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.level == logging.DEBUG

        logging.getLogger("shipwright.retry.executor").info("checkpoint written")
        assert "checkpoint written" in console.file.getvalue()

    def test_plain_handler_replaces_previous(self):
        setup_logging("INFO")
        setup_logging("WARNING", rich=False)

        logger = logging.getLogger("shipwright")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, EventFormatter)
        assert logger.level == logging.WARNING

    def test_unknown_level_defaults_to_info(self):
        setup_logging("LOUD", rich=False)
        assert logging.getLogger("shipwright").level == logging.INFO
