"""
Unit tests for the namespace index and its reader/writer lock.
"""

import asyncio

import pytest

from bluestack.services.blob.index import NamespaceIndex, ReadWriteLock, container_key


class TestNamespaceIndex:
    """Test index membership operations."""

    def test_container_key(self):
        assert container_key("acct", "c1") == "acct/c1"

    def test_exists_empty(self):
        index = NamespaceIndex()
        assert index.exists("acct", "c1") is False
        assert len(index) == 0

    def test_mark_and_unmark(self):
        index = NamespaceIndex()
        index.mark("acct", "c1")
        assert index.exists("acct", "c1") is True

        index.unmark("acct", "c1")
        assert index.exists("acct", "c1") is False

    def test_mark_is_idempotent(self):
        index = NamespaceIndex()
        index.mark("acct", "c1")
        index.mark("acct", "c1")
        assert len(index) == 1

    def test_unmark_is_idempotent(self):
        index = NamespaceIndex()
        index.unmark("acct", "missing")
        assert len(index) == 0

    def test_accounts_are_separate(self):
        index = NamespaceIndex()
        index.mark("acct1", "c1")
        assert index.exists("acct2", "c1") is False

    def test_initial_keys_and_clear(self):
        index = NamespaceIndex([("acct", "c1"), ("acct", "c2")])
        assert index.keys() == {"acct/c1", "acct/c2"}

        index.clear()
        assert len(index) == 0


class TestReadWriteLock:
    """Test shared and exclusive locking."""

    @pytest.mark.asyncio
    async def test_readers_share(self):
        """Test two readers hold the lock at the same time."""
        lock = ReadWriteLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def reader():
            async with lock.read():
                inside.set()
                await release.wait()

        task = asyncio.create_task(reader())
        await inside.wait()

        async with lock.read():
            assert lock.readers == 2

        release.set()
        await task
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self):
        """Test a reader waits while a writer holds the lock."""
        lock = ReadWriteLock()
        entered = []

        async def reader():
            async with lock.read():
                entered.append("reader")

        async with lock.write():
            assert lock.write_locked
            task = asyncio.create_task(reader())
            for _ in range(5):
                await asyncio.sleep(0)
            assert entered == []

        await task
        assert entered == ["reader"]
        assert not lock.write_locked

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        """Test a writer waits until the last reader leaves."""
        lock = ReadWriteLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("writer")

        async with lock.read():
            task = asyncio.create_task(writer())
            for _ in range(5):
                await asyncio.sleep(0)
            order.append("reader done")

        await task
        assert order == ["reader done", "writer"]

    @pytest.mark.asyncio
    async def test_writers_are_exclusive(self):
        """Test writers never overlap."""
        lock = ReadWriteLock()
        active = 0
        peak = 0

        async def writer():
            nonlocal active, peak
            async with lock.write():
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*[writer() for _ in range(5)])
        assert peak == 1

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        """Test the lock is released when the body raises."""
        lock = ReadWriteLock()

        with pytest.raises(RuntimeError):
            async with lock.write():
                raise RuntimeError("boom")

        assert not lock.write_locked
        async with lock.read():
            assert lock.readers == 1
