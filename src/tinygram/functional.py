from __future__ import annotations

__all__ = ["multiply", "solve"]

from typing import Any

from tinygram.gramians.toeplitz import ToeplitzGramian
from tinygram.helpers import JAXArray


def multiply(matrix: Any, x: JAXArray) -> JAXArray:
    """The product of a Gramian or factorization with ``x``

    This dispatches to the fastest product implemented by the concrete
    representation of ``matrix``.
    """
    return matrix.matmul(x)


def solve(matrix: Any, y: JAXArray) -> JAXArray:
    """Solve ``matrix @ x = y`` with a structured direct solver

    Only :class:`tinygram.gramians.ToeplitzGramian` has a direct solver, so
    this raises a ``TypeError`` for any other representation.
    """
    if not isinstance(matrix, ToeplitzGramian):
        raise TypeError(
            "A direct solve is only available for Toeplitz Gramians; "
            f"got {type(matrix).__name__}"
        )
    return matrix.solve(y)
