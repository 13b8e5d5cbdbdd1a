"""Unit tests for the auto-save debouncer."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from saynote.session.debounce import Debouncer


class TestDebouncer:
    """Test Debouncer."""

    @pytest.fixture
    def callback(self):
        return AsyncMock()

    def test_negative_delay(self, callback):
        """Test that the delay cannot be negative."""
        with pytest.raises(ValueError):
            Debouncer(callback, delay=-1)

    def test_submit_needs_running_loop(self, callback):
        """Test that submit outside an event loop fails."""
        with pytest.raises(RuntimeError):
            Debouncer(callback, delay=0.01).submit("x")

    @pytest.mark.asyncio
    async def test_latest_value_wins(self, callback):
        """Test that rapid submissions coalesce into one call with the newest value."""
        debouncer = Debouncer(callback, delay=0.01)
        debouncer.submit("first")
        debouncer.submit("second")
        debouncer.submit("third")
        assert debouncer.pending

        await asyncio.sleep(0.1)

        callback.assert_awaited_once_with("third")
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_flush_delivers_now(self, callback):
        """Test that flush skips the delay."""
        debouncer = Debouncer(callback, delay=60)
        debouncer.submit("doc")
        await debouncer.flush()

        callback.assert_awaited_once_with("doc")
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_flush_without_pending(self, callback):
        """Test that flushing nothing does not call back."""
        await Debouncer(callback, delay=0.01).flush()
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel(self, callback):
        """Test that a cancelled value is never delivered."""
        debouncer = Debouncer(callback, delay=0.01)
        debouncer.submit("doc")
        debouncer.cancel()
        await asyncio.sleep(0.05)
        callback.assert_not_awaited()
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_flush_error_keeps_value(self, callback):
        """Test that a failed flush raises and keeps the value for a retry."""
        callback.side_effect = [OSError("disk full"), None]
        debouncer = Debouncer(callback, delay=60)
        debouncer.submit("doc")

        with pytest.raises(OSError):
            await debouncer.flush()
        assert debouncer.pending
        assert isinstance(debouncer.last_error, OSError)

        await debouncer.flush()
        assert callback.await_count == 2
        assert callback.await_args.args == ("doc",)
        assert debouncer.last_error is None
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_timer_error_reported(self, callback):
        """Test that timer-triggered failures go to on_error instead of raising."""
        callback.side_effect = OSError("disk full")
        on_error = Mock()
        debouncer = Debouncer(callback, delay=0.01, on_error=on_error)
        debouncer.submit("doc")

        await asyncio.sleep(0.1)

        on_error.assert_called_once()
        assert isinstance(on_error.call_args.args[0], OSError)
        assert debouncer.pending
