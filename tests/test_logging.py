"""Test loggers and the logger observer"""

import logging
import os
import tempfile
import unittest

from lmo.language_models.observer import (
    Generation,
    LoggerObserver,
    current_observer,
    observe,
    start_observe_generation,
    stop_observe_generation,
)
from lmo.language_models.thread import assistant_message, user_message
from lmo.utils.logging import (
    ConsoleLogger,
    ExceptionConsoleLogger,
    FileLogger,
    LoglistLogger,
)


class TestLoglistLogger(unittest.TestCase):

    def test_levels(self):
        logger = LoglistLogger()
        logger.info("info")
        logger.warning("warning")
        logger.error("error")
        logger.critical("critical")

        self.assertEqual(logger.count_logs(), 4)
        self.assertEqual(logger.count_logs(level=1), 3)
        self.assertEqual(logger.count_logs(level=2), 2)
        self.assertEqual(logger.get_logs()[0], "INFO - info")
        logger.clear_logs()
        self.assertEqual(logger.count_logs(), 0)


class TestConsoleLoggers(unittest.TestCase):

    def test_set_level(self):
        logger = ConsoleLogger("lmo.test")
        logger.set_level(logging.WARNING)
        self.assertEqual(logger.get_level(), logging.WARNING)

    def test_exception_logger(self):
        logger = ExceptionConsoleLogger("lmo.test.exceptions")
        logger.info("no exception")
        with self.assertRaises(RuntimeError):
            logger.error("failure")

    def test_file_logger(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "test.log")
            logger = FileLogger("lmo.test.file", path)
            logger.warning("written to file")
            logger.close()
            with open(path, encoding="utf-8") as f:
                self.assertIn("written to file", f.read())


class TestObserver(unittest.TestCase):

    def test_no_observer(self):
        self.assertIsNone(current_observer())
        generation = start_observe_generation(
            "openai", "gpt-4o", {}, [user_message("hi")]
        )
        self.assertIsNone(generation)
        # no-op without observer
        stop_observe_generation(generation, [])

    def test_logger_observer(self):
        logger = LoglistLogger()
        observer = LoggerObserver(logger)
        with observe(observer, trace_id="t1"):
            self.assertIs(current_observer(), observer)
            generation = start_observe_generation(
                "openai", "gpt-4o", {"temperature": 0.1}, [user_message("hi")]
            )
            self.assertIsInstance(generation, Generation)
            stop_observe_generation(generation, [assistant_message("hello")])

        self.assertIsNone(current_observer())
        logs = logger.get_logs()
        self.assertEqual(len(logs), 2)
        self.assertIn("[t1] llm-openai started", logs[0])
        self.assertIn("1 output messages", logs[1])

    def test_nested_observe(self):
        outer = LoggerObserver(LoglistLogger())
        inner = LoggerObserver(LoglistLogger())
        with observe(outer, trace_id="outer"):
            with observe(inner, trace_id="inner", parent_id="outer-span"):
                generation = start_observe_generation("m", "x", {}, [])
                self.assertEqual(generation.trace_id, "inner")
                self.assertEqual(generation.parent_id, "outer-span")
            self.assertIs(current_observer(), outer)


if __name__ == "__main__":
    unittest.main()
