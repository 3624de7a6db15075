"""
Sequenced writer for a single CloudWatch Logs stream.

CloudWatch Logs hands out a sequence token with every successful
PutLogEvents call and requires it on the next one. The token is single
use, so only one upload per stream may be in flight at a time. A
SequencedWriter owns that token for one (group, stream) pair.

Invariants:
    - At most one append is in flight per writer; the lock spans retries
    - The token is only read or written while holding the lock
    - An invalidated writer never contacts the transport again
    - A writer removes itself from its registry at most once

How to change safely:
    - Keep the retry loop inside the critical section
    - Test concurrent callers against InMemoryLogTransport
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from .base import (
    InvalidWriterError,
    LogRecord,
    LogTransport,
    UnrecoverableAppendError,
    WriterRegistry,
    WriterStatus,
)
from .rejection import extract_expected_token

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class SequencedWriter:
    """Exclusive, ordered appender for one log stream.

    Stale token rejections are retried with the token the service
    reports, up to ``max_attempts`` calls in total. Any other failure,
    or running out of attempts, retires the writer: it removes itself
    from the registry and every later call raises InvalidWriterError.

    Attributes:
        group: Log group name
        stream: Log stream name

    Example:
        >>> writer = SequencedWriter("app", "web-1", transport, pool)
        >>> await writer.write_batch([LogRecord(content="hello")])
    """

    def __init__(
        self,
        group: str,
        stream: str,
        transport: LogTransport,
        registry: WriterRegistry,
        token: str | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the writer.

        Args:
            group: Log group name
            stream: Log stream name
            transport: Client performing the appends
            registry: Registry to deregister from on failure
            token: Known upload sequence token, None for a new stream
            max_attempts: Total transport calls allowed per batch
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._group = group
        self._stream = stream
        self._transport = transport
        self._registry = registry
        self._token = token
        self._max_attempts = max_attempts
        self._status = WriterStatus.ACTIVE
        self._lock = asyncio.Lock()

    @property
    def group(self) -> str:
        return self._group

    @property
    def stream(self) -> str:
        return self._stream

    @property
    def token(self) -> str | None:
        """Sequence token for the next append."""
        return self._token

    @property
    def status(self) -> WriterStatus:
        return self._status

    @property
    def is_valid(self) -> bool:
        """Whether the writer can still append."""
        return self._status is WriterStatus.ACTIVE

    async def write_message(self, record: LogRecord) -> None:
        """Append a single record."""
        await self.write_batch([record])

    async def write_batch(self, records: Sequence[LogRecord]) -> None:
        """Append records to the stream in order.

        Args:
            records: Records to append; an empty batch is a no-op

        Raises:
            InvalidWriterError: If the writer was already invalidated
            UnrecoverableAppendError: If the append failed for good; the
                writer is invalidated before this is raised
            LogSerializationError: If a record cannot be serialized
        """
        if not records:
            return

        events = [record.to_event() for record in records]

        async with self._lock:
            if self._status is WriterStatus.INVALIDATED:
                raise InvalidWriterError(self._group, self._stream)

            token = self._token
            attempt = 1
            while True:
                try:
                    self._token = await self._transport.append(
                        self._group, self._stream, token, events
                    )
                    return
                except Exception as e:
                    expected = extract_expected_token(e)
                    if expected is None or attempt >= self._max_attempts:
                        self._invalidate(e)
                        raise UnrecoverableAppendError(self._group, self._stream, e) from e

                    logger.debug(
                        "Retrying append with expected sequence token",
                        extra={
                            "group": self._group,
                            "stream": self._stream,
                            "attempt": attempt,
                        },
                    )
                    token = expected.token
                    attempt += 1

    async def close(self) -> None:
        """Close the writer (nothing to release)."""

    def _invalidate(self, error: BaseException) -> None:
        """Retire the writer. Must be called while holding the lock."""
        logger.warning(
            f"Invalidating writer after failed append: {error}",
            extra={"group": self._group, "stream": self._stream},
        )
        self._status = WriterStatus.INVALIDATED
        try:
            self._registry.remove(self._group, self._stream, self)
        except Exception:
            logger.exception(
                "Failed to remove invalidated writer from registry",
                extra={"group": self._group, "stream": self._stream},
            )

    def __repr__(self) -> str:
        return f"SequencedWriter(group={self._group!r}, stream={self._stream!r}, status={self._status.value})"
