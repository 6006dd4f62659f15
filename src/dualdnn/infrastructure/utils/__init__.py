"""
Numerical verification utilities.

Exports
-------
- gradient_check:
    Central-difference oracle comparing an analytic gradient against a
    finite-difference estimate.
- GradientCheckResult, GradientMismatch:
    Structured outcome of a check; the result is truthy iff every coordinate
    passed.
"""

from ._gradient_check import GradientCheckResult, GradientMismatch, gradient_check

__all__ = [
    GradientCheckResult.__name__,
    GradientMismatch.__name__,
    gradient_check.__name__,
]
