from __future__ import annotations

__all__ = ["DenseGramian", "DEFAULT_CHUNK_SIZE"]

import operator
from functools import partial
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp

from tinygram.errors import DimensionMismatch
from tinygram.gramians.base import Gramian, block_matrix, kernel_block_size
from tinygram.helpers import JAXArray, handle_matvec_shapes
from tinygram.kernels.base import Kernel
from tinygram.points import as_array

DEFAULT_CHUNK_SIZE = 256


class DenseGramian(Gramian):
    """The generic lazy Gramian ``K[i, j] = kernel(X1[i], X2[j])``

    This representation works for any kernel and any pair of point sets. Its
    product is computed block-row by block-row, so at most ``chunk_size`` rows
    of the matrix exist at any time, and it is the reference that every
    specialized representation must agree with.

    You generally won't instantiate this object directly; use
    :func:`tinygram.gramian` so that structure detection can run.

    Args:
        kernel: The kernel function.
        X1: The row points, with shape ``(n,)`` or ``(n, n_dim)``.
        X2: The column points. Defaults to ``X1``.
        chunk_size: The number of rows evaluated at once by
            :func:`DenseGramian.matmul`.
    """

    X1: JAXArray
    X2: JAXArray
    symmetric: bool = eqx.field(static=True)
    chunk_size: int = eqx.field(static=True)
    _block_size: int = eqx.field(static=True)

    def __init__(
        self,
        kernel: Kernel,
        X1: Any,
        X2: Any | None = None,
        *,
        symmetric: bool | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be a positive integer")
        self.kernel = kernel
        self.X1 = as_array(X1)
        self.X2 = self.X1 if X2 is None else as_array(X2)
        if symmetric is None:
            symmetric = X2 is None
        self.symmetric = symmetric
        self.chunk_size = chunk_size
        self._block_size = kernel_block_size(kernel, self.X1, self.X2)

    def size(self) -> tuple[int, int]:
        return (self.X1.shape[0], self.X2.shape[0])

    @property
    def row_points(self) -> JAXArray:
        return self.X1

    @property
    def col_points(self) -> JAXArray:
        return self.X2

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def is_symmetric(self) -> bool:
        return self.symmetric

    def evaluate(self, i: int, j: int) -> JAXArray:
        n, m = self.size()
        i = operator.index(i)
        j = operator.index(j)
        if not (0 <= i < n and 0 <= j < m):
            raise DimensionMismatch(
                f"Index ({i}, {j}) is out of bounds for a Gramian of size ({n}, {m})"
            )
        return self.kernel.evaluate(self.X1[i], self.X2[j])

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        n, m = self.size()
        p = self.block_size
        if x.shape[0] != m * p:
            raise DimensionMismatch(
                f"Expected an operand with leading dimension {m * p}; "
                f"got {x.shape[0]}"
            )
        if n == 0 or m == 0:
            return jnp.zeros((n * p, x.shape[1]), dtype=jnp.result_type(x, float))
        x = jnp.reshape(x, (m, p, -1))
        result = _chunked_matmul(self.kernel, self.X1, self.X2, x, self.chunk_size)
        return jnp.reshape(result, (n * p, -1))

    def to_dense(self) -> JAXArray:
        n, m = self.size()
        p = self.block_size
        K = block_matrix(self.kernel, self.X1, self.X2)
        return jnp.reshape(jnp.transpose(K, (0, 2, 1, 3)), (n * p, m * p))

    def diagonal(self) -> JAXArray:
        n, m = self.size()
        if n != m:
            raise DimensionMismatch("The diagonal is only defined for square Gramians")
        if self.symmetric:
            K = jax.vmap(self.kernel.evaluate_diag)(self.X1)
        else:
            K = jax.vmap(self.kernel.evaluate)(self.X1, self.X2)
        if K.ndim == 1:
            return K
        return jnp.reshape(jnp.diagonal(K, axis1=1, axis2=2), (-1,))

    def transpose(self) -> DenseGramian:
        # Kernels are symmetric, so the transpose just swaps the point sets
        if self.symmetric:
            return self
        return DenseGramian(
            self.kernel,
            self.X2,
            self.X1,
            symmetric=False,
            chunk_size=self.chunk_size,
        )


@partial(jax.jit, static_argnames=("chunk_size",))
def _chunked_matmul(
    kernel: Kernel, X1: JAXArray, X2: JAXArray, x: JAXArray, chunk_size: int
) -> JAXArray:
    n = X1.shape[0]
    chunk_size = min(chunk_size, n)
    num_chunks = -(-n // chunk_size)

    # Pad the rows by repeating the last point so that every chunk is full
    pad = num_chunks * chunk_size - n
    rows = jnp.concatenate([X1, jnp.repeat(X1[-1:], pad, axis=0)], axis=0)
    rows = jnp.reshape(rows, (num_chunks, chunk_size) + X1.shape[1:])

    def impl(chunk):  # type: ignore
        K = block_matrix(kernel, chunk, X2)
        return jnp.einsum("imab,mbk->iak", K, x)

    result = jax.lax.map(impl, rows)
    return jnp.reshape(result, (num_chunks * chunk_size,) + result.shape[2:])[:n]
