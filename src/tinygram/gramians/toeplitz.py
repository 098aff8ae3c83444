from __future__ import annotations

__all__ = ["ToeplitzGramian"]

import operator
from typing import Any

import equinox as eqx
import jax.numpy as jnp

from tinygram.errors import DimensionMismatch
from tinygram.gramians.base import Gramian
from tinygram.helpers import JAXArray
from tinygram.kernels.base import Kernel
from tinygram.linalg.toeplitz import levinson_solve, toeplitz_matmul, toeplitz_pivots
from tinygram.points import RegularGrid, as_array


class ToeplitzGramian(Gramian):
    r"""A Gramian with Toeplitz structure

    When a stationary kernel is evaluated on a regular 1-D grid, the matrix
    entries only depend on the index offset,

    .. math::

        K_{ij} = t_{|i - j|}

    so the whole matrix is represented by the generating sequence :math:`t`.
    Products cost :math:`O(n\,\log n)` using a circulant embedding and direct
    solves cost :math:`O(n^2)` using the Levinson-Durbin recursion.

    This is produced by :func:`tinygram.gramian` when the structure detector
    recognizes a regular grid, so you generally won't instantiate it directly.

    Args:
        kernel: The kernel function.
        X: The grid points.
        t: The generating sequence, ``t[k] = kernel(X[0], X[k])``.
        pivot_rtol: The relative pivot threshold used by
            :func:`ToeplitzGramian.solve`.
    """

    X: JAXArray | RegularGrid
    t: JAXArray
    pivot_rtol: float | None = eqx.field(static=True)

    def __init__(
        self,
        kernel: Kernel,
        X: Any,
        t: JAXArray,
        *,
        pivot_rtol: float | None = None,
    ):
        t = jnp.asarray(t)
        if t.ndim != 1:
            raise ValueError("The generating sequence must be a 1-D array")
        if len(X) != t.shape[0]:
            raise ValueError(
                "The generating sequence must have one entry per grid point"
            )
        self.kernel = kernel
        self.X = X
        self.t = t
        self.pivot_rtol = pivot_rtol

    @property
    def points(self) -> JAXArray:
        return as_array(self.X)

    @property
    def row_points(self) -> JAXArray:
        return self.points

    @property
    def col_points(self) -> JAXArray:
        return self.points

    def size(self) -> tuple[int, int]:
        n = self.t.shape[0]
        return (n, n)

    @property
    def block_size(self) -> int:
        return 1

    @property
    def is_symmetric(self) -> bool:
        return True

    def evaluate(self, i: int, j: int) -> JAXArray:
        n = self.t.shape[0]
        i = operator.index(i)
        j = operator.index(j)
        if not (0 <= i < n and 0 <= j < n):
            raise DimensionMismatch(
                f"Index ({i}, {j}) is out of bounds for a Gramian of size ({n}, {n})"
            )
        return self.t[abs(i - j)]

    def matmul(self, x: JAXArray) -> JAXArray:
        return toeplitz_matmul(self.t, x)

    def solve(self, y: JAXArray) -> JAXArray:
        """Solve ``K @ x = y`` using the Levinson-Durbin recursion

        Raises:
            SingularSystem: If a leading principal submatrix is (numerically)
                singular. The exception's ``order`` attribute gives its size.
        """
        return levinson_solve(self.t, y, pivot_rtol=self.pivot_rtol)

    def pivots(self) -> JAXArray:
        """The Levinson pivots, whose product is the determinant"""
        return toeplitz_pivots(self.t, pivot_rtol=self.pivot_rtol)

    def log_determinant(self) -> JAXArray:
        """The log of the absolute value of the determinant"""
        return jnp.sum(jnp.log(jnp.abs(self.pivots())))

    def to_dense(self) -> JAXArray:
        inds = jnp.arange(self.t.shape[0])
        return self.t[jnp.abs(inds[:, None] - inds[None, :])]

    def diagonal(self) -> JAXArray:
        return jnp.full(self.t.shape, self.t[0]) if self.t.shape[0] else self.t

    def transpose(self) -> ToeplitzGramian:
        return self
