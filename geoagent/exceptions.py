# ============================================================================
# EXCEPTIONS
# ============================================================================
# PURPOSE: Exception hierarchy separating contract violations from query/job failures
# EXPORTS: ContractViolationError, BusinessLogicError, TransportError,
#          UnknownSourceError, UnknownTreatmentError, MalformedQueryError,
#          QueueUnavailableError, ResourceNotFoundError, ConfigurationError
# DEPENDENCIES: None (standard library only)
# ============================================================================

"""
Custom Exception Hierarchy

Distinguishes between:
1. Contract Violations (programming bugs that need fixing)
2. Business Logic Failures (expected runtime issues)

Query stages raise business failures; the queue consumer turns them into
an ``error`` job status and a UI notification. Contract violations are
never caught.
"""

from typing import Iterable, Optional


class ContractViolationError(TypeError):
    """
    Raised when component contracts are violated (programming bugs).

    These indicate:
    - Wrong types passed to functions
    - Illegal job status transitions
    - A dispatch table that does not cover every source type

    These should NEVER be caught and handled.
    """
    pass


class BusinessLogicError(Exception):
    """
    Base class for expected runtime failures.

    These are normal failures that occur during system operation
    and should be handled gracefully without crashing the worker.
    """
    pass


class TransportError(BusinessLogicError):
    """
    A fetch or host API call failed.

    Examples:
        - Non-2xx response from a WFS or Overpass endpoint
        - Network error or timeout
        - Response body is not JSON

    Aborts the whole query; no partial result is persisted.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class UnknownSourceError(BusinessLogicError):
    """
    A data spec names a source id or layer/tag the catalog does not know.
    """
    pass


class UnknownTreatmentError(BusinessLogicError):
    """
    A query references treatment ids that are not registered.

    Fatal for the whole query.
    """

    def __init__(self, treatment_ids: Iterable[str], available: Iterable[str] = ()):
        self.treatment_ids = list(treatment_ids)
        self.available = sorted(available)
        super().__init__(
            f"Unknown treatment(s): {', '.join(self.treatment_ids)}. "
            f"Available: {self.available}"
        )


class MalformedQueryError(BusinessLogicError):
    """
    A job payload is not valid JSON or does not describe a structured query.

    Only the job carrying the payload fails.
    """
    pass


class QueueUnavailableError(BusinessLogicError):
    """
    The queue table could not be reached at startup.

    The consumer disables itself instead of failing host startup.
    """
    pass


class ResourceNotFoundError(BusinessLogicError):
    """
    Requested resource does not exist.

    Examples:
        - Table missing from the record store
        - Record id not in table
    """
    pass


class ConfigurationError(Exception):
    """
    System configuration error.

    Examples:
        - Missing GRIST_DOC_ID when running against a live host
        - Non-numeric poll interval
    """
    pass
