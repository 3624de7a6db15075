"""
Unit tests for the in-memory log transport.

Tests cover:
- Token enforcement
- Rejection formats
- Testing helpers
"""

import pytest

from cwlogs_writer.base import (
    LogEvent,
    LogTransport,
    LogTransportConnectionError,
    LogTransportError,
    SequenceTokenRejectedError,
)
from cwlogs_writer.memory import InMemoryLogTransport
from cwlogs_writer.rejection import ExpectedToken, parse_invalid_sequence_token


def events(n=1):
    return [LogEvent(message=f'{{"n":{i}}}', timestamp_ms=i) for i in range(n)]


class TestInMemoryLogTransport:
    """Tests for InMemoryLogTransport."""

    @pytest.fixture
    def transport(self):
        return InMemoryLogTransport()

    def test_implements_protocol(self, transport):
        assert isinstance(transport, LogTransport)

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, transport):
        """Test connection lifecycle."""
        assert not transport.is_connected

        await transport.connect()
        assert transport.is_connected

        await transport.close()
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_append_requires_connection(self, transport):
        with pytest.raises(LogTransportConnectionError):
            await transport.append("app", "web-1", None, events())

    @pytest.mark.asyncio
    async def test_tokens_chain(self, transport):
        """Each append returns a fresh token that the next one must use."""
        await transport.connect()

        t1 = await transport.append("app", "web-1", None, events())
        t2 = await transport.append("app", "web-1", t1, events(2))

        assert t1 != t2
        assert transport.get_token("app", "web-1") == t2
        assert transport.get_event_count("app", "web-1") == 3

    @pytest.mark.asyncio
    async def test_stale_token_rejected(self, transport):
        await transport.connect()
        t1 = await transport.append("app", "web-1", None, events())
        await transport.append("app", "web-1", t1, events())

        with pytest.raises(SequenceTokenRejectedError) as exc_info:
            await transport.append("app", "web-1", t1, events())

        assert exc_info.value.expected_token == transport.get_token("app", "web-1")
        assert transport.get_event_count("app", "web-1") == 2

    @pytest.mark.asyncio
    async def test_text_only_rejection(self):
        """Rejections can omit the structured token."""
        transport = InMemoryLogTransport(structured_rejections=False)
        await transport.connect()
        transport.set_token("app", "web-1", "EXPECTED")

        with pytest.raises(SequenceTokenRejectedError) as exc_info:
            await transport.append("app", "web-1", None, events())

        assert exc_info.value.expected_token is None
        assert parse_invalid_sequence_token(str(exc_info.value)) == ExpectedToken("EXPECTED")

    @pytest.mark.asyncio
    async def test_streams_are_independent(self, transport):
        await transport.connect()

        await transport.append("app", "web-1", None, events())
        await transport.append("app", "web-2", None, events())

        assert transport.get_event_count("app", "web-1") == 1
        assert transport.get_event_count("app", "web-2") == 1

    @pytest.mark.asyncio
    async def test_missing_stream_without_auto_create(self):
        transport = InMemoryLogTransport(auto_create=False)
        await transport.connect()

        with pytest.raises(LogTransportError, match="ResourceNotFoundException"):
            await transport.append("app", "web-1", None, events())

    @pytest.mark.asyncio
    async def test_ensure_stream(self):
        transport = InMemoryLogTransport(auto_create=False)
        await transport.connect()

        assert await transport.ensure_stream("app", "web-1") is None
        token = await transport.append("app", "web-1", None, events())
        assert await transport.ensure_stream("app", "web-1") == token

    @pytest.mark.asyncio
    async def test_inject_failure_consumed_once(self, transport):
        await transport.connect()
        transport.inject_failure(LogTransportError("boom"))

        with pytest.raises(LogTransportError, match="boom"):
            await transport.append("app", "web-1", None, events())

        await transport.append("app", "web-1", None, events())
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_delete_stream(self):
        transport = InMemoryLogTransport(auto_create=False)
        await transport.connect()
        await transport.ensure_stream("app", "web-1")
        await transport.append("app", "web-1", None, events())

        transport.delete_stream("app", "web-1")

        assert transport.get_events("app", "web-1") == []
        with pytest.raises(LogTransportError):
            await transport.append("app", "web-1", None, events())

    @pytest.mark.asyncio
    async def test_close_clears_data(self, transport):
        await transport.connect()
        await transport.append("app", "web-1", None, events())

        await transport.close()
        await transport.connect()

        assert transport.get_event_count("app", "web-1") == 0
        assert transport.calls == []
