"""
Error Code Definitions and Classification.

Centralized error codes for query and job failures, so log records,
persisted ``error_message`` rows and UI notifications describe failures
the same way.

Exports:
    ErrorCode: Standardized error codes enum
    ErrorClassification: Error category enum
    error_code_for: Map an exception to its ErrorCode
    is_retryable: Helper to check if resubmitting the job could help
    create_error_response: Standard error payload for notifications
"""

from enum import Enum
from typing import Dict, Any

import httpx

from geoagent.exceptions import (
    ConfigurationError,
    MalformedQueryError,
    QueueUnavailableError,
    ResourceNotFoundError,
    TransportError,
    UnknownSourceError,
    UnknownTreatmentError,
)


class ErrorCode(str, Enum):
    """
    Standardized error codes for pipeline and queue failures.
    """

    # Query errors (NOT RETRYABLE - the query itself must change)
    MALFORMED_QUERY = "MALFORMED_QUERY"
    UNKNOWN_SOURCE = "UNKNOWN_SOURCE"
    UNKNOWN_TREATMENT = "UNKNOWN_TREATMENT"

    # Transport errors (RETRYABLE)
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TRANSPORT_TIMEOUT = "TRANSPORT_TIMEOUT"
    THROTTLED = "THROTTLED"

    # Host / infrastructure
    QUEUE_UNAVAILABLE = "QUEUE_UNAVAILABLE"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFIG_ERROR = "CONFIG_ERROR"

    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class ErrorClassification(str, Enum):
    """
    Error classification for resubmission decisions.
    """

    PERMANENT = "PERMANENT"    # Resubmitting the same job fails the same way
    TRANSIENT = "TRANSIENT"    # Upstream may recover
    THROTTLING = "THROTTLING"  # Upstream asked us to slow down


_ERROR_CLASSIFICATION: Dict[ErrorCode, ErrorClassification] = {
    ErrorCode.MALFORMED_QUERY: ErrorClassification.PERMANENT,
    ErrorCode.UNKNOWN_SOURCE: ErrorClassification.PERMANENT,
    ErrorCode.UNKNOWN_TREATMENT: ErrorClassification.PERMANENT,
    ErrorCode.CONFIG_ERROR: ErrorClassification.PERMANENT,
    ErrorCode.RESOURCE_NOT_FOUND: ErrorClassification.PERMANENT,

    ErrorCode.TRANSPORT_ERROR: ErrorClassification.TRANSIENT,
    ErrorCode.TRANSPORT_TIMEOUT: ErrorClassification.TRANSIENT,
    ErrorCode.QUEUE_UNAVAILABLE: ErrorClassification.TRANSIENT,
    ErrorCode.UNEXPECTED_ERROR: ErrorClassification.TRANSIENT,

    ErrorCode.THROTTLED: ErrorClassification.THROTTLING,
}


def error_code_for(exc: BaseException) -> ErrorCode:
    """
    Map an exception raised during a job to its ErrorCode.

    Example:
        >>> error_code_for(TransportError("boom", status_code=429))
        <ErrorCode.THROTTLED: 'THROTTLED'>
    """
    if isinstance(exc, MalformedQueryError):
        return ErrorCode.MALFORMED_QUERY
    if isinstance(exc, UnknownTreatmentError):
        return ErrorCode.UNKNOWN_TREATMENT
    if isinstance(exc, UnknownSourceError):
        return ErrorCode.UNKNOWN_SOURCE
    if isinstance(exc, TransportError):
        if exc.status_code == 429:
            return ErrorCode.THROTTLED
        if isinstance(exc.__cause__, httpx.TimeoutException):
            return ErrorCode.TRANSPORT_TIMEOUT
        return ErrorCode.TRANSPORT_ERROR
    if isinstance(exc, QueueUnavailableError):
        return ErrorCode.QUEUE_UNAVAILABLE
    if isinstance(exc, ResourceNotFoundError):
        return ErrorCode.RESOURCE_NOT_FOUND
    if isinstance(exc, ConfigurationError):
        return ErrorCode.CONFIG_ERROR
    return ErrorCode.UNEXPECTED_ERROR


def get_error_classification(error_code: ErrorCode) -> ErrorClassification:
    """Get the classification for an error code."""
    return _ERROR_CLASSIFICATION.get(error_code, ErrorClassification.TRANSIENT)


def is_retryable(error_code: ErrorCode) -> bool:
    """
    Determine if resubmitting a failed job could succeed.

    Example:
        >>> is_retryable(ErrorCode.UNKNOWN_TREATMENT)
        False
        >>> is_retryable(ErrorCode.TRANSPORT_TIMEOUT)
        True
    """
    return get_error_classification(error_code) != ErrorClassification.PERMANENT


def create_error_response(exc: BaseException, **kwargs: Any) -> Dict[str, Any]:
    """
    Create a standardized error payload for an exception.

    Args:
        exc: The exception that ended the job or query
        **kwargs: Additional fields to include (e.g. queryId)

    Returns:
        Dict with error code, message, type and retryability
    """
    code = error_code_for(exc)
    return {
        "success": False,
        "error": code.value,
        "error_type": type(exc).__name__,
        "message": str(exc),
        "retryable": is_retryable(code),
        **kwargs
    }
