import logging
import unittest

from voicebridge.config.logging_config import LOG_LEVEL, configure_logging


class TestLoggingConfig(unittest.TestCase):
    def test_configure_logging(self):
        # Test that the function returns a logger
        logger = configure_logging()
        self.assertIsInstance(logger, logging.Logger)

        # Test that the logger has the correct name
        self.assertEqual(logger.name, "voice_bridge")

        # Test that the logger has the configured level
        self.assertEqual(logger.level, getattr(logging, LOG_LEVEL, logging.INFO))
        self.assertFalse(logger.propagate)

        # Test that the logger has the correct handlers and format
        self.assertGreaterEqual(len(logger.handlers), 1)  # At least one handler (console)
        handler = logger.handlers[0]  # Check first handler (should be console handler)
        self.assertIsInstance(handler, logging.StreamHandler)
        formatter = handler.formatter
        self.assertEqual(formatter._fmt, "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def test_configure_logging_is_repeatable(self):
        first = configure_logging()
        handler_count = len(first.handlers)
        second = configure_logging()
        self.assertIs(first, second)
        self.assertEqual(len(second.handlers), handler_count)


if __name__ == "__main__":
    unittest.main()
