"""
Business logic separated from models.

Exports:
    transitions: Queue job state machine
    geometry: Viewport (bbox/center/zoom) calculations
"""

from .transitions import (
    can_job_transition,
    get_job_terminal_states,
    is_job_terminal,
)
from .geometry import (
    extract_coordinates,
    calculate_bbox,
    calculate_center,
    calculate_zoom,
)

__all__ = [
    'can_job_transition',
    'get_job_terminal_states',
    'is_job_terminal',
    'extract_coordinates',
    'calculate_bbox',
    'calculate_center',
    'calculate_zoom',
]
