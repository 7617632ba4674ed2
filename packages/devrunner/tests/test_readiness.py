"""Tests for CancelScope and ReadinessSignal."""

import asyncio

import pytest

from devrunner.process.cancel import CancelScope
from devrunner.process.readiness import Readiness, ReadinessSignal


class TestCancelScope:
    """Tests for hierarchical cancellation."""

    def test_cancel_reaches_children(self):
        root = CancelScope()
        child = root.child()
        grandchild = child.child()

        root.cancel()

        assert child.cancelled
        assert grandchild.cancelled

    def test_child_cancel_leaves_parent(self):
        root = CancelScope()
        child = root.child()

        child.cancel()

        assert child.cancelled
        assert not root.cancelled

    def test_child_of_cancelled_scope_starts_cancelled(self):
        root = CancelScope()
        root.cancel()

        assert root.child().cancelled

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        scope = CancelScope()
        asyncio.get_running_loop().call_later(0.01, scope.cancel)

        await asyncio.wait_for(scope.wait(), timeout=1.0)

        assert scope.cancelled


class TestReadinessSignal:
    """Tests for the one-shot readiness broadcast."""

    @pytest.mark.asyncio
    async def test_already_fired_returns_immediately(self):
        signal = ReadinessSignal.already_fired()

        assert signal.fired
        assert await signal.wait() is Readiness.FIRED

    @pytest.mark.asyncio
    async def test_signal_is_idempotent(self):
        signal = ReadinessSignal()
        signal.signal()
        signal.signal()

        assert await signal.wait(CancelScope()) is Readiness.FIRED

    @pytest.mark.asyncio
    async def test_releases_every_waiter(self):
        """All current waiters observe the signal."""
        signal = ReadinessSignal()
        waiters = [asyncio.create_task(signal.wait(CancelScope())) for _ in range(3)]
        await asyncio.sleep(0)

        signal.signal()
        results = await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)

        assert results == [Readiness.FIRED] * 3

    @pytest.mark.asyncio
    async def test_cancellation_wakes_waiter(self):
        """A waiter that observes cancellation returns promptly."""
        signal = ReadinessSignal()
        scope = CancelScope()
        waiter = asyncio.create_task(signal.wait(scope))
        await asyncio.sleep(0)

        scope.cancel()
        result = await asyncio.wait_for(waiter, timeout=1.0)

        assert result is Readiness.CANCELLED
        assert not signal.fired

    @pytest.mark.asyncio
    async def test_already_cancelled_scope(self):
        signal = ReadinessSignal()
        scope = CancelScope()
        scope.cancel()

        assert await signal.wait(scope) is Readiness.CANCELLED

    @pytest.mark.asyncio
    async def test_fired_wins_over_cancelled(self):
        """If both are set, the signal counts as fired."""
        signal = ReadinessSignal()
        signal.signal()
        scope = CancelScope()
        scope.cancel()

        assert await signal.wait(scope) is Readiness.FIRED
