"""
Writer registry keyed by (group, stream).

The WriterPool hands out one SequencedWriter per log stream and creates
a replacement on the next lookup after a writer retires itself.

Invariants:
    - At most one live writer is registered per (group, stream)
    - remove() is idempotent and never evicts a replacement writer
    - Writers are created under a per-key lock, so concurrent lookups of
      a missing key create a single writer
    - Preparing one stream never blocks lookups of another
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .base import LogTransport
from .writer import DEFAULT_MAX_ATTEMPTS, SequencedWriter

if TYPE_CHECKING:
    from .config import ClientConfig

logger = logging.getLogger(__name__)


class WriterPool:
    """Registry of sequenced writers sharing one transport.

    Implements the WriterRegistry protocol.

    Example:
        >>> pool = WriterPool(transport)
        >>> writer = await pool.get_writer("app", "web-1")
        >>> await writer.write_batch(records)
    """

    def __init__(
        self,
        transport: LogTransport,
        create_streams: bool = False,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the pool.

        Args:
            transport: Client shared by every writer
            create_streams: Create missing groups/streams before first use
            max_attempts: Attempt bound passed to each writer
        """
        self.transport = transport
        self.create_streams = create_streams
        self.max_attempts = max_attempts
        self._writers: dict[tuple[str, str], SequencedWriter] = {}
        self._key_locks: dict[tuple[str, str], asyncio.Lock] = {}

    async def get_writer(self, group: str, stream: str) -> SequencedWriter:
        """Return the live writer for a stream, creating it on a miss.

        Args:
            group: Log group name
            stream: Log stream name

        Raises:
            LogTransportError: If stream creation was requested and failed
        """
        key = (group, stream)
        writer = self._writers.get(key)
        if writer is not None:
            return writer

        async with self._key_locks.setdefault(key, asyncio.Lock()):
            writer = self._writers.get(key)
            if writer is not None:
                return writer

            token = None
            if self.create_streams:
                token = await self.transport.ensure_stream(group, stream)

            writer = SequencedWriter(
                group,
                stream,
                self.transport,
                self,
                token=token,
                max_attempts=self.max_attempts,
            )
            self._writers[key] = writer
            logger.debug("Created writer", extra={"group": group, "stream": stream})
            return writer

    def remove(
        self,
        group: str,
        stream: str,
        writer: SequencedWriter | None = None,
    ) -> None:
        """Forget the writer registered for (group, stream).

        Args:
            group: Log group name
            stream: Log stream name
            writer: Only remove the entry if it is this instance
        """
        key = (group, stream)
        current = self._writers.get(key)
        if current is None:
            return
        if writer is not None and current is not writer:
            return
        del self._writers[key]
        logger.info("Removed writer", extra={"group": group, "stream": stream})

    async def close(self) -> None:
        """Close and forget every writer."""
        writers = list(self._writers.values())
        self._writers.clear()
        self._key_locks.clear()
        for writer in writers:
            await writer.close()

    def __len__(self) -> int:
        return len(self._writers)

    def __contains__(self, key: object) -> bool:
        return key in self._writers


def create_writer_pool(config: "ClientConfig") -> WriterPool:
    """Factory function to create a CloudWatch-backed pool from configuration.

    The transport is not connected; call ``await pool.transport.connect()``
    before the first write.

    Args:
        config: Client configuration

    Returns:
        WriterPool using a CloudWatchLogsTransport
    """
    from .cloudwatch import CloudWatchLogsTransport

    return WriterPool(
        CloudWatchLogsTransport(config.cloudwatch),
        create_streams=config.cloudwatch.create_streams,
        max_attempts=config.writer.max_attempts,
    )
