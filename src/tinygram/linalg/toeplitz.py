r"""
Algorithms for symmetric Toeplitz matrices

.. math::

    T_{ij} = t_{|i - j|}

represented only by their generating sequence :math:`t`. Products use a
circulant embedding and the FFT, in :math:`O(n\,\log n)`, and direct solves use
the Levinson-Durbin recursion, in :math:`O(n^2)` time and :math:`O(n)` memory.
"""

from __future__ import annotations

__all__ = [
    "embedding_size",
    "circulant_embedding",
    "toeplitz_matmul",
    "toeplitz_pivots",
    "levinson_solve",
]

import warnings
import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from tinygram.errors import DimensionMismatch, NumericalWarning, SingularSystem
from tinygram.helpers import JAXArray, is_concrete


def embedding_size(n: int) -> int:
    """The smallest power of two that is at least ``2 * n - 1``"""
    if n <= 1:
        return 1
    return 1 << (2 * n - 2).bit_length()


def circulant_embedding(t: JAXArray, size: int | None = None) -> JAXArray:
    """Embed a symmetric Toeplitz generating sequence in a circulant one

    Args:
        t (n,): The generating sequence, i.e. the first column of the matrix.
        size: The length of the circulant sequence. Defaults to
            :func:`embedding_size`, and it must be at least ``2 * n - 1``.

    Returns:
        The first column ``[t_0, ..., t_{n-1}, 0, ..., 0, t_{n-1}, ..., t_1]``
        of a ``size`` by ``size`` circulant matrix whose leading ``n`` by ``n``
        block is the Toeplitz matrix.
    """
    t = jnp.asarray(t)
    n = t.shape[0]
    m = embedding_size(n) if size is None else size
    if m < 2 * n - 1:
        raise ValueError(
            f"A circulant embedding of length {m} is too short for a "
            f"generating sequence of length {n}"
        )
    c = jnp.zeros(m, dtype=t.dtype).at[:n].set(t)
    return c.at[m - n + 1 :].set(t[1:][::-1])


@jax.jit
def _circulant_matmul(t: JAXArray, x: JAXArray) -> JAXArray:
    n = t.shape[0]
    m = embedding_size(n)
    fc = jnp.fft.rfft(circulant_embedding(t, m))
    fx = jnp.fft.rfft(x, n=m, axis=0)
    return jnp.fft.irfft(fc[:, None] * fx, n=m, axis=0)[:n]


def toeplitz_matmul(t: JAXArray, x: JAXArray) -> JAXArray:
    """The product of the Toeplitz matrix generated by ``t`` with ``x``

    Args:
        t (n,): The generating sequence.
        x (n, ...): A vector or matrix with leading dimension ``n``.
    """
    t = jnp.asarray(t)
    x = jnp.asarray(x)
    n = t.shape[0]
    if x.ndim == 0 or x.shape[0] != n:
        raise DimensionMismatch(
            f"Expected an operand with leading dimension {n}; got shape {x.shape}"
        )
    if n == 0:
        return x
    dtype = jnp.result_type(t, x, float)
    result = _circulant_matmul(t.astype(dtype), jnp.reshape(x, (n, -1)).astype(dtype))
    return jnp.reshape(result, x.shape)


@jax.jit
def _levinson(t: JAXArray, y: JAXArray) -> tuple[JAXArray, JAXArray]:
    n = t.shape[0]
    inds = jnp.arange(n)
    f = jnp.zeros_like(t).at[0].set(1 / t[0])
    x = jnp.zeros_like(y).at[0].set(y[0] / t[0])

    def impl(carry, k):  # type: ignore
        f, b, x, alpha = carry
        # The last row and the shifted first row of the order k + 1 matrix,
        # restricted to the first k columns
        mask = inds < k
        row = jnp.where(mask, t[jnp.clip(k - inds, 0, n - 1)], 0)
        col = jnp.where(mask, t[jnp.clip(inds + 1, 0, n - 1)], 0)

        eps_f = row @ f
        eps_b = col @ b
        denom = 1 - eps_f * eps_b

        # b is supported on the first k < n entries so roll is a zero-padded
        # shift
        shifted = jnp.roll(b, 1)
        f_next = (f - eps_f * shifted) / denom
        b_next = (shifted - eps_b * f) / denom
        x_next = x + jnp.outer(b_next, y[k] - row @ x)

        alpha = alpha * denom
        return (f_next, b_next, x_next, alpha), alpha

    init = (f, f, x, t[0])
    (_, _, x, _), alphas = jax.lax.scan(impl, init, jnp.arange(1, n))
    return x, jnp.concatenate([t[:1], alphas])


def _default_pivot_rtol(dtype: np.dtype) -> float:
    return 100 * float(jnp.finfo(dtype).eps)


def _check_pivots(alphas: np.ndarray, scale: np.ndarray, pivot_rtol: float) -> None:
    alphas = np.asarray(alphas)
    scale = float(scale)
    valid = np.isfinite(alphas) & (np.abs(alphas) > pivot_rtol * scale)
    if not np.all(valid):
        k = int(np.argmin(valid))
        raise SingularSystem(order=k + 1, pivot=float(alphas[k]))

    if np.any(alphas < 0):
        k = int(np.argmax(alphas < 0))
        warnings.warn(
            f"Negative pivot at order {k + 1}; the Toeplitz matrix is not "
            "positive definite",
            NumericalWarning,
            stacklevel=4,
        )
    ratio = np.min(np.abs(alphas)) / scale
    if ratio < np.sqrt(np.finfo(alphas.dtype).eps):
        warnings.warn(
            f"Toeplitz matrix is ill-conditioned (smallest relative pivot {ratio:.3g})",
            NumericalWarning,
            stacklevel=4,
        )


def _validate_pivots(
    result: JAXArray, t: JAXArray, alphas: JAXArray, pivot_rtol: float | None
) -> JAXArray:
    if pivot_rtol is None:
        pivot_rtol = _default_pivot_rtol(alphas.dtype)
    scale = jnp.max(jnp.abs(t))
    if is_concrete(t, alphas):
        _check_pivots(alphas, scale, pivot_rtol)
        return result
    # The failing order can only be reported eagerly
    valid = jnp.isfinite(alphas) & (jnp.abs(alphas) > pivot_rtol * scale)
    return eqx.error_if(
        result,
        ~jnp.all(valid),
        "Singular Toeplitz system: a Levinson pivot is negligible",
    )


def toeplitz_pivots(t: JAXArray, *, pivot_rtol: float | None = None) -> JAXArray:
    """The Levinson pivots of the Toeplitz matrix generated by ``t``

    The ``k``-th pivot is the ratio of the determinants of the leading
    principal submatrices of orders ``k`` and ``k - 1``, so their product is the
    determinant.

    Raises:
        SingularSystem: If any pivot is zero or negligible.
    """
    t = jnp.asarray(t)
    if t.ndim != 1 or t.shape[0] == 0:
        raise ValueError("The generating sequence must be a non-empty 1-D array")
    dtype = jnp.result_type(t, float)
    t = t.astype(dtype)
    _, alphas = _levinson(t, jnp.zeros((t.shape[0], 1), dtype=dtype))
    return _validate_pivots(alphas, t, alphas, pivot_rtol)


def levinson_solve(
    t: JAXArray, y: JAXArray, *, pivot_rtol: float | None = None
) -> JAXArray:
    """Solve ``T @ x = y`` for the Toeplitz matrix ``T`` generated by ``t``

    This uses the Levinson-Durbin recursion with forward and backward vectors,
    so it requires every leading principal submatrix of ``T`` to be
    nonsingular. The matrix is never formed.

    Args:
        t (n,): The generating sequence.
        y (n, ...): The right hand side, a vector or a matrix of columns.
        pivot_rtol: A pivot with magnitude at or below ``pivot_rtol * max|t|``
            is treated as singular. Defaults to ``100`` times the machine
            epsilon of the working precision.

    Raises:
        SingularSystem: If a pivot is zero or negligible, reporting the order
            of the failing leading principal submatrix.
        DimensionMismatch: If ``y`` doesn't have leading dimension ``n``.
    """
    t = jnp.asarray(t)
    y = jnp.asarray(y)
    if t.ndim != 1:
        raise ValueError("The generating sequence must be a 1-D array")
    n = t.shape[0]
    if y.ndim == 0 or y.shape[0] != n:
        raise DimensionMismatch(
            f"Expected a right hand side with leading dimension {n}; "
            f"got shape {y.shape}"
        )
    if n == 0:
        return y
    dtype = jnp.result_type(t, y, float)
    t = t.astype(dtype)
    x, alphas = _levinson(t, jnp.reshape(y, (n, -1)).astype(dtype))
    x = _validate_pivots(x, t, alphas, pivot_rtol)
    return jnp.reshape(x, y.shape)
