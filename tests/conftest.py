"""Shared test fixtures and configuration.

Sets environment variables before any pokerroom modules are imported,
so config never reads a developer's real credentials or data directory.
"""

import os
import random

# Set env vars BEFORE any pokerroom imports happen.
# pytest loads conftest.py before test modules, so this runs first.
os.environ.setdefault("OPENROUTER_API_KEY", "test-key-not-real")
os.environ.setdefault("POKERROOM_DATA_DIR", os.path.join(os.path.dirname(__file__), ".data"))

import pytest  # noqa: E402

from pokerroom.models import Participant, ParticipantKind  # noqa: E402
from pokerroom.store import InMemoryRecordStore  # noqa: E402


class FakeOracle:
    """Oracle double returning canned replies and recording prompts."""

    def __init__(self, reply: str | None = '{"points": 5, "reasoning": "Looks moderate."}',
                 configured: bool = True, error: Exception | None = None):
        self.reply = reply
        self.configured = configured
        self.error = error
        self.prompts: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    async def complete(self, prompt: str) -> str | None:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


async def no_sleep(_seconds: float) -> None:
    """Sleep replacement that returns immediately."""
    return None


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def alice():
    return Participant(id="alice-id", name="Alice", kind=ParticipantKind.HUMAN)


@pytest.fixture
def bob():
    return Participant(id="bob-id", name="Bob", kind=ParticipantKind.HUMAN)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def oracle():
    return FakeOracle()
