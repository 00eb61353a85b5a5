"""
Unit tests for structured logging.
"""

import json
import logging

import pytest

from pkg.logger import (
    StructuredFormatter,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.lines = []
        self.setFormatter(StructuredFormatter())

    def emit(self, record):
        self.lines.append(self.format(record))


class TestStructuredLogger:
    """Tests for the structured logger and formatter."""

    @pytest.fixture
    def captured(self):
        """Attach a JSON capturing handler to a test logger."""
        logger = get_logger("feed_service.tests.logging")
        logger.setLevel(logging.DEBUG)
        handler = _ListHandler()
        logger.addHandler(handler)
        yield logger, handler.lines
        logger.removeHandler(handler)
        set_correlation_id(None)

    def test_keyword_extras_become_fields(self, captured):
        """Test that keyword arguments are emitted as JSON keys."""
        logger, lines = captured

        logger.info("Feed fetched", url="https://x", size=10, tags=("a", "b"))

        payload = json.loads(lines[0])
        assert payload["message"] == "Feed fetched"
        assert payload["level"] == "INFO"
        assert payload["url"] == "https://x"
        assert payload["size"] == 10
        assert payload["tags"] == ["a", "b"]

    def test_correlation_id_is_attached(self, captured):
        """Test that the bound correlation id appears on records."""
        logger, lines = captured
        set_correlation_id("job-42")

        logger.warning("Retrying")

        assert get_correlation_id() == "job-42"
        assert json.loads(lines[0])["correlation_id"] == "job-42"

    def test_exception_is_formatted(self, captured):
        """Test that exc_info is rendered into the record."""
        logger, lines = captured

        try:
            raise ValueError("bad feed")
        except ValueError:
            logger.error("Parse failed", exc_info=True)

        payload = json.loads(lines[0])
        assert "ValueError: bad feed" in payload["exception"]

    def test_disabled_level_is_skipped(self, captured):
        """Test that records below the logger level are not emitted."""
        logger, lines = captured
        logger.setLevel(logging.WARNING)

        logger.debug("noise", detail="x")

        assert lines == []
