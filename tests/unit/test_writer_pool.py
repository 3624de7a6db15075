"""
Unit tests for the WriterPool registry.

Tests cover:
- Create on miss and reuse
- Identity-checked, idempotent removal
- Stream creation with an initial token
- Factory from configuration
"""

import asyncio

import pytest

from cwlogs_writer.base import LogRecord, UnrecoverableAppendError, WriterRegistry
from cwlogs_writer.cloudwatch import CloudWatchLogsTransport
from cwlogs_writer.config import ClientConfig, CloudWatchLogsConfig, WriterConfig
from cwlogs_writer.memory import InMemoryLogTransport
from cwlogs_writer.registry import WriterPool, create_writer_pool
from cwlogs_writer.writer import SequencedWriter


class GatedTransport(InMemoryLogTransport):
    """In-memory transport whose stream preparation can be held open."""

    def __init__(self, gated_stream, **kwargs):
        super().__init__(**kwargs)
        self.gated_stream = gated_stream
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def ensure_stream(self, group, stream):
        if stream == self.gated_stream:
            self.entered.set()
            await self.gate.wait()
        return await super().ensure_stream(group, stream)


class TestWriterPool:
    """Tests for WriterPool."""

    @pytest.fixture
    def transport(self):
        return InMemoryLogTransport()

    @pytest.fixture
    def pool(self, transport):
        return WriterPool(transport)

    def test_implements_registry_protocol(self, pool):
        assert isinstance(pool, WriterRegistry)

    @pytest.mark.asyncio
    async def test_get_writer_creates_on_miss(self, pool):
        """First lookup creates a writer for the key."""
        writer = await pool.get_writer("app", "web-1")

        assert isinstance(writer, SequencedWriter)
        assert writer.group == "app"
        assert writer.stream == "web-1"
        assert ("app", "web-1") in pool
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_get_writer_reuses(self, pool):
        """Later lookups return the same instance."""
        first = await pool.get_writer("app", "web-1")
        second = await pool.get_writer("app", "web-1")

        assert first is second

    @pytest.mark.asyncio
    async def test_distinct_keys_distinct_writers(self, pool):
        a = await pool.get_writer("app", "web-1")
        b = await pool.get_writer("app", "web-2")
        c = await pool.get_writer("other", "web-1")

        assert len({id(a), id(b), id(c)}) == 3
        assert len(pool) == 3

    @pytest.mark.asyncio
    async def test_concurrent_lookups_create_one_writer(self, transport):
        """Concurrent misses on one key share a single writer."""
        await transport.connect()
        pool = WriterPool(transport, create_streams=True)

        writers = await asyncio.gather(*(pool.get_writer("app", "web-1") for _ in range(5)))

        assert all(w is writers[0] for w in writers)
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_slow_stream_does_not_block_other_keys(self):
        """A lookup stuck preparing one stream leaves other keys usable."""
        transport = GatedTransport("slow")
        await transport.connect()
        pool = WriterPool(transport, create_streams=True)

        pending = asyncio.create_task(pool.get_writer("app", "slow"))
        await transport.entered.wait()

        other = await asyncio.wait_for(pool.get_writer("app", "web-1"), timeout=1)

        assert other.stream == "web-1"
        assert not pending.done()

        transport.gate.set()
        slow = await asyncio.wait_for(pending, timeout=1)

        assert slow.stream == "slow"
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_remove(self, pool):
        writer = await pool.get_writer("app", "web-1")

        pool.remove("app", "web-1", writer)

        assert ("app", "web-1") not in pool

    @pytest.mark.asyncio
    async def test_remove_without_instance(self, pool):
        await pool.get_writer("app", "web-1")

        pool.remove("app", "web-1")

        assert len(pool) == 0

    def test_remove_missing_is_idempotent(self, pool):
        """Removing an absent key does nothing."""
        pool.remove("app", "web-1")
        pool.remove("app", "web-1")

        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_remove_keeps_replacement(self, pool):
        """A retired writer cannot evict its replacement."""
        old = await pool.get_writer("app", "web-1")
        pool.remove("app", "web-1", old)
        replacement = await pool.get_writer("app", "web-1")

        pool.remove("app", "web-1", old)

        assert replacement is not old
        assert await pool.get_writer("app", "web-1") is replacement

    @pytest.mark.asyncio
    async def test_create_streams_seeds_token(self, transport):
        """Writers start from the stream's current upload token."""
        await transport.connect()
        transport.set_token("app", "web-1", "EXISTING")
        pool = WriterPool(transport, create_streams=True)

        writer = await pool.get_writer("app", "web-1")

        assert writer.token == "EXISTING"

    @pytest.mark.asyncio
    async def test_max_attempts_passed_to_writers(self, transport):
        """Writers inherit the pool's attempt bound."""
        await transport.connect()
        transport.set_token("app", "web-1", "ABC123")
        pool = WriterPool(transport, max_attempts=1)
        writer = await pool.get_writer("app", "web-1")

        with pytest.raises(UnrecoverableAppendError):
            await writer.write_message(LogRecord(content="x"))

        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_close_forgets_writers(self, pool):
        await pool.get_writer("app", "web-1")
        await pool.get_writer("app", "web-2")

        await pool.close()

        assert len(pool) == 0


class TestCreateWriterPool:
    """Tests for the configuration factory."""

    def test_builds_cloudwatch_pool(self):
        config = ClientConfig(
            cloudwatch=CloudWatchLogsConfig(region="eu-west-1", create_streams=True),
            writer=WriterConfig(max_attempts=5),
        )

        pool = create_writer_pool(config)

        assert isinstance(pool.transport, CloudWatchLogsTransport)
        assert pool.transport.config.region == "eu-west-1"
        assert pool.create_streams is True
        assert pool.max_attempts == 5
        assert not pool.transport.is_connected
