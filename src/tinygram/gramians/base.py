from __future__ import annotations

__all__ = ["Gramian"]

from abc import abstractmethod
from typing import Any

import equinox as eqx
import jax

from tinygram.helpers import JAXArray
from tinygram.kernels.base import Kernel


class Gramian(eqx.Module):
    """The interface shared by all lazy Gramian representations

    A Gramian is the matrix ``K[i, j] = kernel(X1[i], X2[j])``. It is never
    stored densely: entries are computed on demand, and each concrete
    representation implements :func:`Gramian.matmul` in the fastest way its
    structure allows.

    For matrix-valued kernels every entry is a ``(p, p)`` block, where ``p`` is
    :attr:`Gramian.block_size`, so the operator shape is ``(n * p, m * p)``.
    """

    # Must be higher than jax's
    __array_priority__ = 2000

    kernel: Kernel

    @abstractmethod
    def size(self) -> tuple[int, int]:
        """The number of row and column points"""
        raise NotImplementedError

    @property
    @abstractmethod
    def block_size(self) -> int:
        """The size ``p`` of the (square) block returned by the kernel"""
        raise NotImplementedError

    @abstractmethod
    def evaluate(self, i: int, j: int) -> JAXArray:
        """The kernel evaluated at row point ``i`` and column point ``j``"""
        raise NotImplementedError

    @abstractmethod
    def matmul(self, x: JAXArray) -> JAXArray:
        """The product of this matrix with a dense vector or matrix

        Args:
            x (m * p, ...): A vector or matrix with leading dimension matching
                the number of columns of this operator.
        """
        raise NotImplementedError

    @abstractmethod
    def to_dense(self) -> JAXArray:
        """Render this representation to a dense matrix

        This is not optimized and should only be used for testing or small
        problems.
        """
        raise NotImplementedError

    @abstractmethod
    def diagonal(self) -> JAXArray:
        """The diagonal entries of a square operator"""
        raise NotImplementedError

    @property
    @abstractmethod
    def is_symmetric(self) -> bool:
        raise NotImplementedError

    @property
    @abstractmethod
    def row_points(self) -> JAXArray:
        """The row points as an array with leading dimension ``n``"""
        raise NotImplementedError

    @property
    @abstractmethod
    def col_points(self) -> JAXArray:
        """The column points as an array with leading dimension ``m``"""
        raise NotImplementedError

    @property
    def shape(self) -> tuple[int, int]:
        """The shape of the operator"""
        n, m = self.size()
        p = self.block_size
        return (n * p, m * p)

    @property
    def input_trait(self) -> Any:
        return self.kernel.input_trait

    def __matmul__(self, other: Any) -> Any:
        return self.matmul(other)

    def __rmatmul__(self, other: Any) -> Any:
        # (y^T K) = (K^T y)^T
        return self.transpose().matmul(other.transpose()).transpose()

    @abstractmethod
    def transpose(self) -> Gramian:
        """The transposed Gramian"""
        raise NotImplementedError

    @property
    def T(self) -> Gramian:
        return self.transpose()


def block_matrix(kernel: Kernel, X1: JAXArray, X2: JAXArray) -> JAXArray:
    """Evaluate ``kernel`` on all pairs as an ``(n, m, p, p)`` array"""
    K = jax.vmap(jax.vmap(kernel.evaluate, in_axes=(None, 0)), in_axes=(0, None))(
        X1, X2
    )
    if K.ndim == 2:
        return K[:, :, None, None]
    return K


def kernel_block_size(kernel: Kernel, X1: JAXArray, X2: JAXArray) -> int:
    """The block size ``p`` of ``kernel`` for points shaped like ``X1`` and ``X2``"""
    shape = jax.eval_shape(
        kernel.evaluate,
        jax.ShapeDtypeStruct(X1.shape[1:], X1.dtype),
        jax.ShapeDtypeStruct(X2.shape[1:], X2.dtype),
    ).shape
    if shape == ():
        return 1
    if len(shape) == 2 and shape[0] == shape[1]:
        return shape[0]
    raise ValueError(
        "Invalid kernel output shape: expected a scalar or a square block, "
        f"got shape {shape}"
    )
