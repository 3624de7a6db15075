"""
In-memory log transport for testing.

This module provides a LogTransport that enforces sequence tokens the
way CloudWatch Logs does, for:
- Unit tests of the writer retry protocol
- Integration tests of the writer pool
- Local development without AWS

Invariants:
    - All data is lost on process exit
    - A stale or missing token is rejected and names the expected token
    - Every append call is recorded, including rejected ones

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the LogTransport protocol
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .base import (
    LogEvent,
    LogTransportConnectionError,
    LogTransportError,
    SequenceTokenRejectedError,
)
from .rejection import INVALID_SEQUENCE_TOKEN

logger = logging.getLogger(__name__)


@dataclass
class AppendCall:
    """One recorded append call."""
    group: str
    stream: str
    token: str | None
    events: list[LogEvent]


@dataclass
class InMemoryStream:
    """In-memory log stream storage."""
    events: list[LogEvent] = field(default_factory=list)
    token: str | None = None


class InMemoryLogTransport:
    """In-memory implementation of LogTransport for testing.

    Attributes:
        structured_rejections: Attach the expected token to rejections as
            data; when False only the error text carries it
        auto_create: Accept appends to streams that were never created
        delay: Seconds each append sleeps, to widen race windows in tests
        calls: Every append call in the order received

    Example:
        >>> transport = InMemoryLogTransport()
        >>> await transport.connect()
        >>> token = await transport.append("app", "web-1", None, events)
        >>> await transport.append("app", "web-1", token, more_events)
    """

    def __init__(
        self,
        structured_rejections: bool = True,
        auto_create: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.structured_rejections = structured_rejections
        self.auto_create = auto_create
        self.delay = delay
        self.calls: list[AppendCall] = []
        self._streams: dict[tuple[str, str], InMemoryStream] = {}
        self._failures: list[Exception] = []
        self._counter = itertools.count(1)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryLogTransport connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._streams.clear()
        self.calls.clear()
        self._failures.clear()
        logger.debug("InMemoryLogTransport closed")

    async def append(
        self,
        group: str,
        stream: str,
        token: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        """Append events if ``token`` matches the stream's expected token.

        Raises:
            LogTransportConnectionError: If not connected
            SequenceTokenRejectedError: If the token is stale or missing
            LogTransportError: If the stream does not exist, or an
                injected failure is pending
        """
        if not self._connected:
            raise LogTransportConnectionError("Not connected")

        self.calls.append(AppendCall(group, stream, token, list(events)))

        if self.delay:
            await asyncio.sleep(self.delay)

        if self._failures:
            raise self._failures.pop(0)

        target = self._streams.get((group, stream))
        if target is None:
            if not self.auto_create:
                raise LogTransportError(
                    f"ResourceNotFoundException: The specified log stream does not exist: {group}/{stream}"
                )
            target = self._streams[(group, stream)] = InMemoryStream()

        if token != target.token:
            raise self._rejection(target.token)

        target.events.extend(events)
        target.token = self._next_token()

        logger.debug(
            "Events appended to in-memory stream",
            extra={"group": group, "stream": stream, "count": len(events)},
        )
        return target.token

    async def ensure_stream(self, group: str, stream: str) -> str | None:
        """Create the stream if missing and return its current token."""
        if not self._connected:
            raise LogTransportConnectionError("Not connected")

        target = self._streams.setdefault((group, stream), InMemoryStream())
        return target.token

    def _next_token(self) -> str:
        return f"{next(self._counter):056d}"

    def _rejection(self, expected: str | None) -> SequenceTokenRejectedError:
        message = (
            f"{INVALID_SEQUENCE_TOKEN}: The given sequenceToken is invalid. "
            f"The next expected sequenceToken is: {expected or 'null'}"
        )
        if self.structured_rejections:
            return SequenceTokenRejectedError(message, expected_token=expected, structured=True)
        return SequenceTokenRejectedError(message)

    # Testing helpers

    def inject_failure(self, exception: Exception) -> None:
        """Make the next append raise ``exception``.

        Failures queue up; each one is consumed by a single call.
        """
        self._failures.append(exception)

    def set_token(self, group: str, stream: str, token: str | None) -> None:
        """Force the token a stream expects next (simulates another writer)."""
        self._streams.setdefault((group, stream), InMemoryStream()).token = token

    def delete_stream(self, group: str, stream: str) -> None:
        """Delete a stream; later appends fail unless auto_create is set."""
        self._streams.pop((group, stream), None)

    def get_events(self, group: str, stream: str) -> list[LogEvent]:
        """Get all events stored for a stream."""
        target = self._streams.get((group, stream))
        return list(target.events) if target else []

    def get_event_count(self, group: str, stream: str) -> int:
        """Get the number of events stored for a stream."""
        return len(self.get_events(group, stream))

    def get_token(self, group: str, stream: str) -> str | None:
        """Get the token a stream expects next."""
        target = self._streams.get((group, stream))
        return target.token if target else None
