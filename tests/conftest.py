"""Shared fixtures for lorekeeper tests."""

from datetime import datetime, timezone

import pytest

from fakes import WordCounter
from lorekeeper.config.schema import Config


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def word_counter():
    return WordCounter()


@pytest.fixture
def now():
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
