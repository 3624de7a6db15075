"""
AWS CloudWatch Logs transport.

This module provides the LogTransport used in production. It uses
aiobotocore for async PutLogEvents calls.

Invariants:
    - A missing sequence token is omitted from the request, never sent empty
    - Token mismatches surface as SequenceTokenRejectedError carrying
      the expected token when the service returns it
    - Every other service error surfaces as LogTransportError

How to change safely:
    - Test with LocalStack before deploying to AWS
    - Keep the error mapping in sync with rejection.extract_expected_token
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import ClientError, EndpointConnectionError

from .base import (
    LogEvent,
    LogTransportConnectionError,
    LogTransportError,
    LogTransportThrottledError,
    LogTransportTimeoutError,
    SequenceTokenRejectedError,
)
from .rejection import INVALID_SEQUENCE_TOKEN

logger = logging.getLogger(__name__)

_ALREADY_EXISTS = "ResourceAlreadyExistsException"


class CloudWatchLogsTransport:
    """CloudWatch Logs implementation of the LogTransport protocol.

    Attributes:
        config: CloudWatchLogsConfig instance

    Example:
        >>> config = CloudWatchLogsConfig(region="us-east-1")
        >>> transport = CloudWatchLogsTransport(config)
        >>> await transport.connect()
        >>> token = await transport.append("app", "web-1", None, events)
    """

    def __init__(self, config: Any) -> None:
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to CloudWatch Logs."""
        return self._connected

    async def connect(self) -> None:
        """Create the boto session and logs client.

        Raises:
            LogTransportConnectionError: If the client cannot be created
        """
        if self._connected:
            return

        try:
            self._session = get_session()

            client_config = {
                "region_name": self.config.region,
            }

            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url

            self._client_ctx = self._session.create_client("logs", **client_config)
            self._client = await self._client_ctx.__aenter__()

            self._connected = True
            logger.info(
                "Connected to CloudWatch Logs",
                extra={
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except EndpointConnectionError as e:
            raise LogTransportConnectionError(
                f"Failed to connect to CloudWatch Logs endpoint: {e}"
            ) from e
        except Exception as e:
            raise LogTransportConnectionError(f"Failed to connect to CloudWatch Logs: {e}") from e

    async def close(self) -> None:
        """Close the logs client."""
        if self._client:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing CloudWatch Logs client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
        self._connected = False
        logger.info("CloudWatch Logs connection closed")

    async def append(
        self,
        group: str,
        stream: str,
        token: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        """Append events with PutLogEvents.

        Args:
            group: Log group name
            stream: Log stream name
            token: Sequence token, None for the first write to a stream
            events: Ordered events

        Returns:
            The next sequence token

        Raises:
            LogTransportConnectionError: If not connected
            SequenceTokenRejectedError: If the token is stale
            LogTransportTimeoutError: If the call times out
            LogTransportError: For other service errors
        """
        if not self._client:
            raise LogTransportConnectionError("Not connected to CloudWatch Logs")

        request: dict[str, Any] = {
            "logGroupName": group,
            "logStreamName": stream,
            "logEvents": [event.to_dict() for event in events],
        }
        if token:
            request["sequenceToken"] = token

        try:
            response = await asyncio.wait_for(
                self._client.put_log_events(**request),
                timeout=self.config.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise LogTransportTimeoutError("CloudWatch Logs PutLogEvents timed out")
        except ClientError as e:
            raise self._map_client_error(e) from e

        rejected = response.get("rejectedLogEventsInfo")
        if rejected:
            logger.warning(
                "CloudWatch Logs rejected some events",
                extra={"group": group, "stream": stream, "rejected": rejected},
            )

        logger.debug(
            "Events appended to CloudWatch Logs",
            extra={"group": group, "stream": stream, "count": len(events)},
        )
        return response.get("nextSequenceToken")

    async def ensure_stream(self, group: str, stream: str) -> str | None:
        """Create the log group and stream if they do not exist.

        Returns:
            The stream's upload sequence token, None for an empty stream

        Raises:
            LogTransportConnectionError: If not connected
            LogTransportError: If creation or lookup fails
        """
        if not self._client:
            raise LogTransportConnectionError("Not connected to CloudWatch Logs")

        try:
            await self._create_ignoring_existing(
                self._client.create_log_group(logGroupName=group)
            )
            await self._create_ignoring_existing(
                self._client.create_log_stream(logGroupName=group, logStreamName=stream)
            )

            response = await self._client.describe_log_streams(
                logGroupName=group,
                logStreamNamePrefix=stream,
            )
        except ClientError as e:
            raise LogTransportError(f"Failed to prepare {group}/{stream}: {e}") from e

        for desc in response.get("logStreams", []):
            if desc.get("logStreamName") == stream:
                return desc.get("uploadSequenceToken")
        return None

    async def _create_ignoring_existing(self, call: Any) -> None:
        try:
            await call
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") != _ALREADY_EXISTS:
                raise

    def _map_client_error(self, error: ClientError) -> LogTransportError:
        """Translate a botocore error into this package's hierarchy."""
        error_info = error.response.get("Error", {})
        error_code = error_info.get("Code", "")

        if error_code == INVALID_SEQUENCE_TOKEN:
            return SequenceTokenRejectedError(
                f"{INVALID_SEQUENCE_TOKEN}: {error_info.get('Message', '')}",
                expected_token=error.response.get("expectedSequenceToken") or None,
                structured="expectedSequenceToken" in error.response,
            )
        if error_code == "ThrottlingException":
            return LogTransportThrottledError(
                f"CloudWatch Logs throttled PutLogEvents: {error_code}: {error_info.get('Message', '')}"
            )
        return LogTransportError(
            f"CloudWatch Logs PutLogEvents failed: {error_code}: {error_info.get('Message', '')}"
        )

    async def health_check(self) -> bool:
        """Check if the CloudWatch Logs client is usable."""
        if not self._client:
            return False

        try:
            await asyncio.wait_for(
                self._client.describe_log_groups(limit=1),
                timeout=5.0,
            )
            return True
        except Exception:
            return False
