"""
Central-difference gradient check.

`gradient_check` compares an analytic gradient against a finite-difference
estimate, coordinate by coordinate. It is a test oracle: it never raises on
a mismatch, it reports.

Callable contract
-----------------
`func(point, gradient_out) -> float`

- `point` is a 1-D float64 NumPy array; `func` must not keep a reference to
  it, since the oracle perturbs it in place between calls.
- `gradient_out` is an empty list the callable extends with one derivative
  per coordinate. Numerical-only evaluations may leave it untouched; it is
  read only after the first (analytic) call.

Tolerance
---------
For coordinate `i` with analytic value `a` and numeric estimate

    n = (f(x + eps*e_i) - f(x - eps*e_i)) / (2*eps)

the relative error is `|n - a| / max(1, |n|, |a|)`, and the coordinate fails
when it exceeds `eps * 0.1`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Sequence
import warnings

import numpy as np

GradientFunction = Callable[[np.ndarray, List[float]], float]

TOLERANCE_FACTOR = 0.1


@dataclass(frozen=True)
class GradientMismatch:
    """One coordinate whose analytic and numeric derivatives disagree."""

    index: int
    analytic: float
    numeric: float
    relative_error: float


@dataclass
class GradientCheckResult:
    """
    Outcome of a gradient check.

    Truthy iff every coordinate passed, so `assert gradient_check(...)` and
    `if not gradient_check(...)` read naturally.
    """

    epsilon: float
    analytic: np.ndarray
    numeric: np.ndarray
    mismatches: List[GradientMismatch] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches

    def __bool__(self) -> bool:
        return self.passed


def _relative_error(numeric: float, analytic: float) -> float:
    scale = max(1.0, abs(numeric), abs(analytic))
    return abs(numeric - analytic) / scale


def gradient_check(
    func: GradientFunction,
    x: Sequence[float],
    epsilon: float,
    *,
    verbose: bool = True,
) -> GradientCheckResult:
    """
    Check `func`'s analytic gradient at `x` against central differences.

    Parameters
    ----------
    func : GradientFunction
        `func(point, gradient_out) -> value`; see the module docstring.
    x : Sequence[float]
        Point to check at. Never modified.
    epsilon : float
        Perturbation size. The failure threshold is `epsilon * 0.1`.
    verbose : bool, optional
        Emit a RuntimeWarning per failing coordinate. Defaults to True.

    Returns
    -------
    GradientCheckResult
        Per-coordinate analytic and numeric values plus every mismatch.

    Raises
    ------
    ValueError
        If `epsilon <= 0`, or the analytic gradient does not have one entry
        per coordinate.
    """
    epsilon = float(epsilon)
    if not epsilon > 0.0:
        raise ValueError(f"epsilon must be positive, got {epsilon}")

    point = np.array(x, dtype=np.float64).reshape(-1)
    n = point.size

    grad: List[float] = []
    func(point.copy(), grad)
    if len(grad) != n:
        raise ValueError(
            f"analytic gradient has {len(grad)} entries for {n} coordinates"
        )
    analytic = np.asarray(grad, dtype=np.float64)
    numeric = np.empty(n, dtype=np.float64)

    threshold = epsilon * TOLERANCE_FACTOR
    result = GradientCheckResult(epsilon=epsilon, analytic=analytic, numeric=numeric)

    for i in range(n):
        original = point[i]

        point[i] = original - epsilon
        f_minus = float(func(point, []))
        point[i] = original + epsilon
        f_plus = float(func(point, []))
        point[i] = original

        numeric[i] = (f_plus - f_minus) / (2.0 * epsilon)
        err = _relative_error(numeric[i], analytic[i])
        if err > threshold:
            mismatch = GradientMismatch(
                index=i,
                analytic=float(analytic[i]),
                numeric=float(numeric[i]),
                relative_error=float(err),
            )
            result.mismatches.append(mismatch)
            if verbose:
                warnings.warn(
                    f"gradient check failed at index {i}: analytic={mismatch.analytic:.8g} "
                    f"numeric={mismatch.numeric:.8g} relative_error={err:.3e} "
                    f"(threshold {threshold:.3e})",
                    RuntimeWarning,
                    stacklevel=2,
                )

    return result
