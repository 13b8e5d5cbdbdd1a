"""Unit tests for HistoryManager."""

import json

import pytest

from saynote.document.serialization import history_to_json
from saynote.history.manager import HistoryManager, redo_key, undo_key
from saynote.models.blocks import paragraph
from saynote.services.exceptions import PersistenceError
from saynote.services.kv_store import InMemoryKeyValueStore


def doc(*texts):
    """Document with one paragraph per text and ids derived from the text."""
    return tuple(paragraph(text, block_id=f"b_{text}") for text in texts)


D0 = doc("a")
D1 = doc("a", "b")
D2 = doc("a", "b", "c")
D3 = doc("a", "b", "c", "d")


class FailingStore(InMemoryKeyValueStore):
    """Store whose writes always fail."""

    async def set(self, key, value):
        raise PersistenceError("disk full")


class TestHistoryManager:
    """Test stack transitions."""

    @pytest.fixture
    def history(self, clock):
        """History that has seen three edits: D0 -> D1 -> D2 -> D3."""
        manager = HistoryManager("page_1", clock=clock)
        for previous in (D0, D1, D2):
            manager.record(previous)
        return manager

    def test_invalid_max_entries(self):
        """Test that the bound must be positive."""
        with pytest.raises(ValueError):
            HistoryManager("page_1", max_entries=0)

    def test_record_clears_redo(self, history):
        """Test that a new edit discards the redo stack."""
        history.undo(D3)
        assert history.can_redo
        history.record(D2)
        assert not history.can_redo
        assert history.undo_depth == 3

    def test_undo_then_redo_restores(self, history):
        """Test that undo followed by redo gives back the same document."""
        undone = history.undo(D3)
        assert undone.document == D2
        assert undone.message == "Undo 1 change(s)"
        redone = history.redo(undone.document)
        assert redone.document == D3
        assert (history.undo_depth, history.redo_depth) == (3, 0)

    def test_multi_step_undo(self, history):
        """Test undoing several steps at once."""
        outcome = history.undo(D3, steps=2)
        assert outcome.document == D1
        assert (outcome.requested, outcome.applied) == (2, 2)
        assert not outcome.partial
        assert history.redo_depth == 2

    def test_partial_undo(self, history):
        """Test that asking for more steps than recorded stops at the oldest state."""
        outcome = history.undo(D3, steps=5)
        assert outcome.document == D0
        assert outcome.applied == 3
        assert outcome.partial
        assert outcome.message == "Undo 3 of 5 change(s); no more history"

    def test_nothing_to_undo(self, clock):
        """Test undo on an empty stack."""
        outcome = HistoryManager("page_1", clock=clock).undo(D0)
        assert outcome.document == D0
        assert not outcome.changed
        assert outcome.message == "Nothing to undo"

    def test_nothing_to_redo(self, history):
        """Test redo without a prior undo."""
        assert history.redo(D3).message == "Nothing to redo"

    def test_invalid_steps(self, history):
        """Test that step counts must be positive."""
        with pytest.raises(ValueError):
            history.undo(D3, steps=0)

    def test_bounded_stack_drops_oldest(self, clock):
        """Test that the oldest entries fall off a full stack."""
        manager = HistoryManager("page_1", max_entries=2, clock=clock)
        for previous in (D0, D1, D2):
            manager.record(previous)
        assert manager.undo_depth == 2
        outcome = manager.undo(D3, steps=3)
        assert outcome.document == D1
        assert outcome.applied == 2

    def test_record_suppressed_while_applying(self, history):
        """Test that applying an undo result is not recorded as a new edit."""
        with history.applying():
            assert history.is_applying
            assert history.record(D3) is False
        assert not history.is_applying
        assert history.undo_depth == 3

    def test_clear(self, history):
        """Test dropping all history."""
        history.undo(D3)
        history.clear()
        assert not history.can_undo
        assert not history.can_redo


class TestHistoryPersistence:
    """Test load/persist against a key-value store."""

    @pytest.mark.asyncio
    async def test_persist_and_load(self, kv_store, clock):
        """Test that stacks survive a reload."""
        history = HistoryManager("page_1", store=kv_store, clock=clock)
        history.record(D0)
        history.record(D1)
        history.undo(D2)
        await history.persist()

        assert len(json.loads(kv_store.data[undo_key("page_1")])) == 1
        assert len(json.loads(kv_store.data[redo_key("page_1")])) == 1

        reloaded = HistoryManager("page_1", store=kv_store, clock=clock)
        await reloaded.load()
        assert (reloaded.undo_depth, reloaded.redo_depth) == (1, 1)
        assert reloaded.undo(D1).document == D0

    @pytest.mark.asyncio
    async def test_empty_stack_deletes_key(self, kv_store, clock):
        """Test that an emptied stack removes its key."""
        history = HistoryManager("page_1", store=kv_store, clock=clock)
        history.record(D0)
        await history.persist()
        assert undo_key("page_1") in kv_store.data
        assert redo_key("page_1") not in kv_store.data

        history.undo(D1)
        await history.persist()
        assert undo_key("page_1") not in kv_store.data
        assert redo_key("page_1") in kv_store.data

    @pytest.mark.asyncio
    async def test_load_missing_keys(self, kv_store, clock):
        """Test that a page without stored history starts empty."""
        history = HistoryManager("page_new", store=kv_store, clock=clock)
        await history.load()
        assert not history.can_undo

    @pytest.mark.asyncio
    async def test_load_respects_bound(self, clock):
        """Test that loading keeps only the newest max_entries snapshots."""
        store = InMemoryKeyValueStore({undo_key("page_1"): history_to_json([D0, D1, D2])})
        history = HistoryManager("page_1", store=store, max_entries=2, clock=clock)
        await history.load()
        assert history.undo_depth == 2
        assert history.undo(D3, steps=2).document == D1

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_empty(self, clock):
        """Test that an unreadable stored stack is treated as empty."""
        store = InMemoryKeyValueStore({undo_key("page_1"): "{not json"})
        history = HistoryManager("page_1", store=store, clock=clock)
        await history.load()
        assert not history.can_undo

    @pytest.mark.asyncio
    async def test_persist_failure(self, clock):
        """Test that store failures surface as PersistenceError naming the page."""
        history = HistoryManager("page_1", store=FailingStore(), clock=clock)
        history.record(D0)
        with pytest.raises(PersistenceError) as exc_info:
            await history.persist()
        assert exc_info.value.page_id == "page_1"

    @pytest.mark.asyncio
    async def test_discard(self, kv_store, clock):
        """Test that discarding removes stored history."""
        history = HistoryManager("page_1", store=kv_store, clock=clock)
        history.record(D0)
        await history.persist()
        await history.discard()
        assert kv_store.data == {}
        assert not history.can_undo
