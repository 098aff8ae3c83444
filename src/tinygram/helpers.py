from __future__ import annotations

__all__ = ["JAXArray", "is_concrete", "handle_matvec_shapes"]

from functools import wraps
from typing import Any, Callable

import jax
import jax.numpy as jnp

from tinygram.errors import DimensionMismatch

JAXArray = jax.Array


def is_concrete(*args: Any) -> bool:
    """Check that none of the leaves in ``args`` are being traced

    Host-side inspection (structure detection, pivot checks) is only possible
    when this returns ``True``.
    """
    leaves = jax.tree_util.tree_leaves(args)
    return not any(isinstance(leaf, jax.core.Tracer) for leaf in leaves)


def handle_matvec_shapes(
    func: Callable[[Any, JAXArray], JAXArray]
) -> Callable[[Any, JAXArray], JAXArray]:
    @wraps(func)
    def wrapped(self: Any, x: JAXArray) -> JAXArray:
        x = jnp.asarray(x)
        if x.ndim == 0:
            raise DimensionMismatch("Cannot multiply a matrix by a scalar operand")
        output_shape = x.shape
        result = func(self, jnp.reshape(x, (output_shape[0], -1)))
        return jnp.reshape(result, (result.shape[0],) + output_shape[1:])

    return wrapped
