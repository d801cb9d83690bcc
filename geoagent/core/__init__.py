"""
Core building blocks for the query pipeline.

Structure:
    models/: Pure data structures (no business logic)
    logic/: Business logic separated from models
    errors.py: Error codes and classification
"""

from . import models
from . import logic

__all__ = ['models', 'logic']
