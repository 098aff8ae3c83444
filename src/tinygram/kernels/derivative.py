"""
Matrix-valued kernels built by differentiating a scalar kernel. These return a
small dense block for every pair of inputs, and they satisfy the same Gramian
contract as scalar kernels: the resulting operator has shape
``(n * p, m * p)`` for block size ``p``.
"""

from __future__ import annotations

__all__ = ["Gradient"]

import jax
import jax.numpy as jnp

from tinygram.helpers import JAXArray
from tinygram.kernels.base import Kernel


class Gradient(Kernel):
    r"""The covariance of the gradient of a process with kernel ``kernel``

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \nabla_{\mathbf{x}_i}
            \nabla_{\mathbf{x}_j}^T k_0(\mathbf{x}_i,\,\mathbf{x}_j)

    The inputs must be 1-D arrays with shape ``n_dim``, and each evaluation
    returns an ``(n_dim, n_dim)`` block. The trait is always ``GENERIC``.

    Args:
        kernel: The scalar base kernel :math:`k_0`.
    """

    kernel: Kernel

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        X1 = jnp.atleast_1d(X1)
        X2 = jnp.atleast_1d(X2)
        # Rows index the derivative along X1, columns along X2
        return jax.jacfwd(jax.grad(self.kernel.evaluate, argnums=0), argnums=1)(
            X1, X2
        )
