"""
Base protocols and types for sequenced CloudWatch Logs writers.

This module defines the records, wire events, errors and collaborator
protocols shared by the writer, the registry and the transports.

Invariants:
    - LogRecord.time is always present
    - Destination identity (group, stream) never appears in a wire payload
    - All errors raised by this package inherit from LogWriterError

How to change safely:
    - Protocol changes require updating every transport and registry
    - New LogRecord attributes must be omitted from JSON when empty
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .writer import SequencedWriter

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


class LogWriterError(Exception):
    """Base exception for log writer operations."""
    pass


class InvalidWriterError(LogWriterError):
    """The writer was invalidated by an earlier unrecoverable failure.

    Callers must obtain a fresh writer from the registry.
    """

    def __init__(self, group: str, stream: str) -> None:
        super().__init__(f"writer for {group}/{stream} was invalidated")
        self.group = group
        self.stream = stream


class UnrecoverableAppendError(LogWriterError):
    """An append failed and the writer retired itself.

    Attributes:
        group: Log group of the failed writer
        stream: Log stream of the failed writer
        cause: The underlying transport error
    """

    def __init__(self, group: str, stream: str, cause: BaseException) -> None:
        super().__init__(f"append to {group}/{stream} failed: {cause}")
        self.group = group
        self.stream = stream
        self.cause = cause


class LogSerializationError(LogWriterError):
    """Failed to serialize a log record."""
    pass


class LogTransportError(LogWriterError):
    """Transport failed to perform a call."""
    pass


class LogTransportConnectionError(LogTransportError):
    """Connection to the log service failed."""
    pass


class LogTransportTimeoutError(LogTransportError):
    """Transport call timed out."""
    pass


class LogTransportThrottledError(LogTransportError):
    """The log service throttled the call."""
    pass


class SequenceTokenRejectedError(LogTransportError):
    """The destination rejected the sequence token supplied with an append.

    The message follows the ``Code: message`` form used by the service so
    it can be parsed when no structured token is available.

    Attributes:
        expected_token: Token the destination expects next; None with
            structured=True means the next append must carry no token
        structured: Whether expected_token came from the service as data
    """

    def __init__(
        self,
        message: str,
        expected_token: str | None = None,
        structured: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.expected_token = expected_token
        self.structured = expected_token is not None if structured is None else structured


class WriterStatus(Enum):
    """Lifecycle state of a SequencedWriter."""

    ACTIVE = "active"
    INVALIDATED = "invalidated"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LogEvent:
    """A serialized record ready for PutLogEvents.

    Attributes:
        message: JSON payload without destination identity
        timestamp_ms: Event time in milliseconds since the epoch
    """
    message: str
    timestamp_ms: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the PutLogEvents InputLogEvent shape."""
        return {"message": self.message, "timestamp": self.timestamp_ms}


@dataclass
class LogRecord:
    """One application log entry.

    Attributes:
        group: Destination log group
        stream: Destination log stream
        content: Log message text
        level: Severity name (e.g. "INFO")
        host: Originating host
        fields: Free-form structured payload
        time: Event time (timezone aware, defaults to now)

    Example:
        >>> record = LogRecord(group="app", stream="web-1", content="started")
        >>> event = record.to_event()
        >>> "app" in event.message
        False
    """
    group: str = ""
    stream: str = ""
    content: str = ""
    level: str = ""
    host: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    time: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.time is None:
            self.time = _utcnow()
        elif self.time.tzinfo is None:
            self.time = self.time.replace(tzinfo=timezone.utc)

    @property
    def timestamp_ms(self) -> int:
        """Event time in milliseconds since the epoch."""
        return (self.time - _EPOCH) // _MILLISECOND

    def to_dict(self, identity: bool = True) -> dict[str, Any]:
        """Convert to a dictionary, omitting empty attributes.

        Args:
            identity: Include group, stream and time
        """
        data: dict[str, Any] = {}
        if identity:
            if self.group:
                data["group"] = self.group
            if self.stream:
                data["stream"] = self.stream
            data["time"] = self.time.isoformat()
        if self.level:
            data["level"] = self.level
        if self.host:
            data["host"] = self.host
        if self.fields:
            data["fields"] = self.fields
        if self.content:
            data["content"] = self.content
        return data

    def to_json(self, identity: bool = True) -> str:
        """Serialize as compact JSON.

        Raises:
            LogSerializationError: If a field value is not JSON serializable
        """
        try:
            return json.dumps(self.to_dict(identity), separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise LogSerializationError(f"Failed to serialize log record: {e}") from e

    def to_event(self) -> LogEvent:
        """Build the wire event for this record.

        The timestamp travels beside the payload and the destination is
        addressed by the append call, so group, stream and time are
        left out of the serialized message.
        """
        return LogEvent(message=self.to_json(identity=False), timestamp_ms=self.timestamp_ms)


@runtime_checkable
class LogTransport(Protocol):
    """Protocol for the append-only log service client.

    Ordering contract:
        - append() with the token returned by the previous append succeeds
        - append() with a stale or missing token raises
          SequenceTokenRejectedError (or an error whose text carries
          the expected token)

    Example:
        >>> transport = CloudWatchLogsTransport(config)
        >>> await transport.connect()
        >>> token = await transport.append("app", "web-1", None, events)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the log service.

        Raises:
            LogTransportConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the client."""
        ...

    @abstractmethod
    async def append(
        self,
        group: str,
        stream: str,
        token: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        """Append events to a stream.

        Args:
            group: Log group name
            stream: Log stream name
            token: Sequence token from the previous append, None for a new stream
            events: Ordered events to append

        Returns:
            The sequence token to present with the next append

        Raises:
            SequenceTokenRejectedError: If the token is stale
            LogTransportError: For other failures
        """
        ...

    @abstractmethod
    async def ensure_stream(self, group: str, stream: str) -> str | None:
        """Create the group and stream if missing.

        Returns:
            The stream's current upload sequence token, if any
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected."""
        ...


@runtime_checkable
class WriterRegistry(Protocol):
    """The narrow registry capability a writer needs to retire itself."""

    @abstractmethod
    def remove(
        self,
        group: str,
        stream: str,
        writer: SequencedWriter | None = None,
    ) -> None:
        """Forget the writer registered for (group, stream).

        Must be idempotent. When ``writer`` is given, the entry is only
        removed if that exact instance still occupies the key.
        """
        ...
