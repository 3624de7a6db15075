"""
cwlogs-writer - ordered, retrying appends to AWS CloudWatch Logs streams.

CloudWatch Logs accepts a PutLogEvents call only when it carries the
sequence token returned by the previous call to the same stream. This
package provides:
- SequencedWriter: the single in-flight appender for one stream, which
  retries stale tokens with the token the service expects
- WriterPool: the registry that hands out one writer per stream and
  replaces writers that retired after an unrecoverable failure
- Transports for CloudWatch Logs (aiobotocore) and in-memory testing

Invariants:
    - Appends to one stream are totally ordered
    - A failed writer never writes again; the pool builds a fresh one

Example:
    >>> pool = create_writer_pool(ClientConfig.from_env())
    >>> await pool.transport.connect()
    >>> writer = await pool.get_writer("app", "web-1")
    >>> await writer.write_batch([LogRecord(content="started")])
"""

from ._version import __version__
from .base import (
    InvalidWriterError,
    LogEvent,
    LogRecord,
    LogSerializationError,
    LogTransport,
    LogTransportConnectionError,
    LogTransportError,
    LogTransportThrottledError,
    LogTransportTimeoutError,
    LogWriterError,
    SequenceTokenRejectedError,
    UnrecoverableAppendError,
    WriterRegistry,
    WriterStatus,
)
from .cloudwatch import CloudWatchLogsTransport
from .config import (
    ClientConfig,
    CloudWatchLogsConfig,
    ObservabilityConfig,
    WriterConfig,
    setup_logging,
)
from .memory import InMemoryLogTransport
from .registry import WriterPool, create_writer_pool
from .rejection import ExpectedToken, extract_expected_token, parse_invalid_sequence_token
from .writer import SequencedWriter

__all__ = [
    "__version__",
    # Records
    "LogRecord",
    "LogEvent",
    # Writer and registry
    "SequencedWriter",
    "WriterStatus",
    "WriterRegistry",
    "WriterPool",
    "create_writer_pool",
    # Rejection parsing
    "ExpectedToken",
    "extract_expected_token",
    "parse_invalid_sequence_token",
    # Transports
    "LogTransport",
    "CloudWatchLogsTransport",
    "InMemoryLogTransport",
    # Configuration
    "ClientConfig",
    "CloudWatchLogsConfig",
    "WriterConfig",
    "ObservabilityConfig",
    "setup_logging",
    # Errors
    "LogWriterError",
    "InvalidWriterError",
    "UnrecoverableAppendError",
    "LogSerializationError",
    "LogTransportError",
    "LogTransportConnectionError",
    "LogTransportTimeoutError",
    "LogTransportThrottledError",
    "SequenceTokenRejectedError",
]
