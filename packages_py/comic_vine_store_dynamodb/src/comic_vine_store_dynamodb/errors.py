"""
DynamoDB error types and classification.
"""
import asyncio
import socket
from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from comic_vine_stores import OperationTimeoutError, StoreError, ThrottlingError


class DynamoDBStoreError(StoreError):
    """A DynamoDB call failed for a reason the stores do not handle themselves."""


THROTTLING_CODES = frozenset(
    {
        "ThrottlingException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "Throttling",
    }
)

UNAVAILABLE_CODES = frozenset(
    {
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "InternalServerError",
        "InternalFailure",
    }
)

CONNECTION_ERRORS = (
    ConnectTimeoutError,
    ReadTimeoutError,
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectionResetError,
    socket.gaierror,
    asyncio.TimeoutError,
    TimeoutError,
    OperationTimeoutError,
)


def error_code(error: BaseException) -> Optional[str]:
    """The AWS error code of a ClientError, if any."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, ClientError):
        return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


def is_conditional_check_failed(error: BaseException) -> bool:
    return error_code(error) == "ConditionalCheckFailedException"


def is_throttling_error(error: BaseException) -> bool:
    return isinstance(error, ThrottlingError) or error_code(error) in THROTTLING_CODES


def is_severe_error(error: BaseException) -> bool:
    """
    Errors that count toward the circuit breaker: service unavailable,
    internal server errors, connection failures and throttling.
    """
    if is_throttling_error(error):
        return True
    if isinstance(error, CONNECTION_ERRORS):
        return True
    if error_code(error) in UNAVAILABLE_CODES:
        return True
    return status_code(error) in (500, 503)


def is_retryable_error(error: BaseException) -> bool:
    """Transient failures worth another attempt."""
    return is_severe_error(error)
