"""Tests for logging configuration"""
import logging

import pytest
from loguru import logger

from switchboard.core.logging import (
    InterceptHandler,
    clear_provider_context,
    set_provider_context,
)


@pytest.fixture
def captured():
    """Collect loguru messages emitted during a test"""
    messages = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), format="{message}")
    yield messages
    logger.remove(sink_id)


def _emit(name: str, message: str) -> None:
    record = logging.LogRecord(name, logging.INFO, __file__, 1, message, None, None)
    InterceptHandler().emit(record)


@pytest.mark.unit
class TestInterceptHandler:
    """Tests for routing stdlib records into loguru"""

    def test_httpx_record_tagged_with_provider(self, captured):
        set_provider_context("Relay")
        try:
            _emit("httpx", 'HTTP Request: GET https://relay.example.com/v1/models "HTTP/1.1 200 OK"')
        finally:
            clear_provider_context()

        assert captured == [
            '[Provider: Relay] HTTP Request: GET https://relay.example.com/v1/models "HTTP/1.1 200 OK"'
        ]

    def test_no_tag_without_provider(self, captured):
        _emit("httpx", "HTTP Request: GET https://example.com")
        assert captured == ["HTTP Request: GET https://example.com"]

    def test_other_loggers_untagged(self, captured):
        set_provider_context("Relay")
        try:
            _emit("sqlalchemy.engine", "BEGIN (implicit)")
        finally:
            clear_provider_context()
        assert captured == ["BEGIN (implicit)"]
