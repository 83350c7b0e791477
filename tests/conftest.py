"""Shared pytest fixtures."""

import httpx
import pytest

from helpers import RecordingTransport, gemini_body
from settings import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key-123", model_name="gemini-2.0-flash-lite")


@pytest.fixture
def dev_settings() -> Settings:
    return Settings(api_key="test-key-123", mode="development")


@pytest.fixture
def reply_transport() -> RecordingTransport:
    return RecordingTransport(lambda request: httpx.Response(200, text=gemini_body("Hello <b>there</b>!  ")))
