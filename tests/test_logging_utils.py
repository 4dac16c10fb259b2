"""Tests for the JSON event logging helpers."""

import json
import logging
import unittest
from unittest import mock

from scrapestudio.logging_utils import configure_logging, log_event


class TestLogEvent(unittest.TestCase):
    """Verify the shape of structured log lines."""

    def setUp(self):
        self.logger = logging.getLogger("scrapestudio.tests.logging")
        self.logger.setLevel(logging.DEBUG)

    def test_event_leads_and_fields_follow(self):
        """The event name should come first, followed by sorted fields."""
        with self.assertLogs(self.logger, level="INFO") as logs:
            log_event(self.logger, logging.INFO, "job_completed", url="https://a.com", attempts=2)
        message = logs.records[0].getMessage()
        self.assertTrue(message.startswith('{"event": "job_completed", "attempts": 2'))
        self.assertEqual(json.loads(message), {"event": "job_completed", "attempts": 2, "url": "https://a.com"})

    def test_event_without_fields(self):
        """An event with no fields should still be valid JSON."""
        with self.assertLogs(self.logger, level="INFO") as logs:
            log_event(self.logger, logging.INFO, "worker_started")
        self.assertEqual(json.loads(logs.records[0].getMessage()), {"event": "worker_started"})

    def test_non_json_values_are_stringified(self):
        """Values json cannot encode should be logged via str()."""
        with self.assertLogs(self.logger, level="WARNING") as logs:
            log_event(self.logger, logging.WARNING, "odd", error=ValueError("bad"))
        self.assertEqual(json.loads(logs.records[0].getMessage())["error"], "bad")

    def test_disabled_level_is_skipped(self):
        """Nothing should be serialised or logged below the logger's level."""
        self.logger.setLevel(logging.ERROR)
        with mock.patch.object(self.logger, "log") as log:
            log_event(self.logger, logging.INFO, "ignored")
        log.assert_not_called()


class TestConfigureLogging(unittest.TestCase):
    """Verify the package handler is installed once."""

    def test_handler_added_once(self):
        """Calling configure_logging twice should not duplicate handlers."""
        logger = configure_logging("debug")
        count = len(logger.handlers)
        configure_logging("INFO")
        self.assertEqual(len(logger.handlers), count)
        self.assertEqual(logger.level, logging.INFO)


if __name__ == "__main__":
    unittest.main()
