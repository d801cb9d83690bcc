"""
State Transition Logic for Query Jobs.

Contains business rules for valid queue state transitions.
Separated from data models for clean architecture.

Exports:
    can_job_transition: Check if a job state transition is valid
    get_job_terminal_states: Terminal states for jobs
    is_job_terminal: Check if a job is in a terminal state
"""

from typing import List

from ..models.enums import QueryJobStatus


_TRANSITIONS = {
    QueryJobStatus.PENDING: [QueryJobStatus.PROCESSING],
    QueryJobStatus.PROCESSING: [QueryJobStatus.SUCCESS, QueryJobStatus.ERROR],
    QueryJobStatus.SUCCESS: [],  # Terminal state
    QueryJobStatus.ERROR: [],    # Terminal state
}


def can_job_transition(current: QueryJobStatus, target: QueryJobStatus) -> bool:
    """
    Check if a job can transition from current to target status.

    Unlike a retrying task, a query job never returns to a previous state
    and never re-enters the state it is in.

    Args:
        current: Current job status
        target: Target job status

    Returns:
        True if transition is valid, False otherwise
    """
    return QueryJobStatus(target) in _TRANSITIONS.get(QueryJobStatus(current), [])


def get_job_terminal_states() -> List[QueryJobStatus]:
    """
    Get list of terminal states for jobs.

    Returns:
        List of terminal job statuses
    """
    return [QueryJobStatus.SUCCESS, QueryJobStatus.ERROR]


def is_job_terminal(status: QueryJobStatus) -> bool:
    """Check if a job status is terminal."""
    return QueryJobStatus(status) in get_job_terminal_states()
