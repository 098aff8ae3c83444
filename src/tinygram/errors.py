"""
The error types raised by ``tinygram``. Shape violations and singular direct
solves are fatal and raise one of the exceptions below; structure detection
never raises, it just falls back to the generic representation. Heuristic
conditioning problems are reported as a :class:`NumericalWarning` through the
standard :mod:`warnings` machinery.
"""

from __future__ import annotations

__all__ = [
    "GramianError",
    "DimensionMismatch",
    "SingularSystem",
    "NumericalWarning",
]


class GramianError(Exception):
    """The base class for all errors raised by ``tinygram``"""


class DimensionMismatch(GramianError, ValueError):
    """Raised when an operand has a shape incompatible with the matrix"""


class SingularSystem(GramianError, ValueError):
    """Raised when a direct solve hits a zero or negligible pivot

    Args:
        order: The size of the leading principal submatrix whose pivot failed,
            counting from 1.
        pivot: The offending pivot value.
    """

    def __init__(self, order: int, pivot: float | None = None):
        self.order = order
        self.pivot = pivot
        msg = f"Singular Toeplitz system: pivot at order {order} is negligible"
        if pivot is not None:
            msg += f" (pivot={pivot!r})"
        super().__init__(msg)

    def __reduce__(self):  # type: ignore
        return (type(self), (self.order, self.pivot))


class NumericalWarning(UserWarning):
    """Advisory warning for heuristically detected ill-conditioning"""
