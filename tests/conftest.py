"""Shared test fixtures for all test modules."""

import itertools

import pytest

from saynote.models.blocks import heading, page_link, paragraph
from saynote.services.kv_store import InMemoryKeyValueStore
from saynote.services.page_store import InMemoryPageStore


class FakeClock:
    """Deterministic clock: every call returns a strictly larger time."""

    def __init__(self, start: float = 1_700_000_000.0, step: float = 1.0):
        self._ticks = itertools.count()
        self.start = start
        self.step = step

    def __call__(self) -> float:
        return self.start + next(self._ticks) * self.step


@pytest.fixture
def clock():
    """Fresh deterministic clock."""
    return FakeClock()


@pytest.fixture
def page_store(clock):
    """Empty in-memory page store with a deterministic clock."""
    return InMemoryPageStore(clock=clock)


@pytest.fixture
def kv_store():
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def sample_document():
    """Heading followed by two paragraphs, with fixed ids."""
    return (
        heading("Meeting notes", block_id="h1"),
        paragraph("Paragraph A about customer feedback", block_id="p1"),
        paragraph("Paragraph B", block_id="p2"),
    )


@pytest.fixture
def linked_document():
    """Document with one link to a child page ``page_child``."""
    return (
        heading("Project", block_id="h1"),
        paragraph("Intro", block_id="p1"),
        page_link("page_child", "Child", "📄", block_id="link1"),
    )
