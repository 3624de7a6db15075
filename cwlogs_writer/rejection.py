"""
Extraction of the expected sequence token from append rejections.

CloudWatch Logs answers a stale sequence token with an
InvalidSequenceTokenException that names the token it expects next.
Transports that expose the value as data are read directly; otherwise
the token is recovered from the error text, which looks like:

    InvalidSequenceTokenException: The given sequenceToken is invalid. The next expected sequenceToken is: 4959...

Invariants:
    - Anything that is not recognizably a token mismatch yields None
    - Only the first line of a message is ever inspected
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from botocore.exceptions import ClientError

from .base import SequenceTokenRejectedError

logger = logging.getLogger(__name__)

INVALID_SEQUENCE_TOKEN = "InvalidSequenceTokenException"

# Text the service uses when the stream expects no token at all.
NULL_TOKEN = "null"

_PREFIX = INVALID_SEQUENCE_TOKEN + ":"
_MIN_PARTS = 3


class ExpectedToken(NamedTuple):
    """The token a rejected append should be retried with.

    ``token`` is None when the stream expects the next append to carry
    no sequence token (an empty or recreated stream).
    """
    token: str | None


def parse_invalid_sequence_token(message: str) -> ExpectedToken | None:
    """Parse the expected token out of a token mismatch message.

    Args:
        message: Error text of the form ``InvalidSequenceTokenException: ...: <token>``

    Returns:
        The expected token, or None if the text is not a token mismatch
    """
    if not message.startswith(_PREFIX):
        return None

    first_line = message.split("\n", 1)[0]
    parts = first_line.split(":")
    if len(parts) < _MIN_PARTS:
        logger.debug(
            "Token mismatch message has too few parts",
            extra={"parts": len(parts)},
        )
        return None

    token = parts[-1].strip()
    if not token:
        return None
    if token == NULL_TOKEN:
        return ExpectedToken(None)
    return ExpectedToken(token)


def extract_expected_token(rejection: BaseException) -> ExpectedToken | None:
    """Return the token a rejected append should be retried with.

    Structured data is trusted when the rejection carries it, including
    a structured "no token expected"; the error text is only parsed
    otherwise.

    Args:
        rejection: Exception raised by the transport

    Returns:
        The expected token, or None if the rejection is not recoverable
    """
    if isinstance(rejection, SequenceTokenRejectedError) and rejection.structured:
        return ExpectedToken(rejection.expected_token)

    if isinstance(rejection, ClientError):
        if rejection.response.get("Error", {}).get("Code") != INVALID_SEQUENCE_TOKEN:
            return None
        if "expectedSequenceToken" in rejection.response:
            return ExpectedToken(rejection.response["expectedSequenceToken"] or None)
        message = rejection.response.get("Error", {}).get("Message", "")
        return parse_invalid_sequence_token(f"{_PREFIX} {message}")

    return parse_invalid_sequence_token(str(rejection))
