"""Invariant checks for a live lock engine."""

from .sanity_checks import InvariantChecker, ValidationWarning, validate_engine

__all__ = [
    "InvariantChecker",
    "ValidationWarning",
    "validate_engine"
]
