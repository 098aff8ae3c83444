"""
Point sets for Gramians. Any JAX array with leading dimension ``n`` works as a
point set; :class:`RegularGrid` is a compact descriptor for the common 1-D case
of equally spaced coordinates, which the structure detector recognizes without
inspecting the points.
"""

from __future__ import annotations

__all__ = ["RegularGrid", "as_array", "num_points"]

from typing import Any

import equinox as eqx
import jax.numpy as jnp

from tinygram.helpers import JAXArray


class RegularGrid(eqx.Module):
    """A regular 1-D grid ``start + step * arange(count)``

    Args:
        start: The first coordinate.
        step: The spacing between neighbouring coordinates.
        count: The number of points.
    """

    start: JAXArray | float
    step: JAXArray | float
    count: int = eqx.field(static=True)

    def __check_init__(self) -> None:
        if self.count < 0:
            raise ValueError("The number of grid points must be non-negative")
        if jnp.ndim(self.start) != 0 or jnp.ndim(self.step) != 0:
            raise ValueError("A regular grid needs a scalar start and step")

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: Any) -> JAXArray:
        return self.to_array()[index]

    def to_array(self) -> JAXArray:
        """The materialized coordinates as a 1-D array"""
        start = jnp.asarray(self.start)
        step = jnp.asarray(self.step)
        dtype = jnp.result_type(start, step, float)
        return start + step * jnp.arange(self.count, dtype=dtype)


def as_array(X: Any) -> JAXArray:
    """Convert a point set to an array with leading dimension ``n``"""
    if isinstance(X, RegularGrid):
        return X.to_array()
    X = jnp.asarray(X)
    if X.ndim not in (1, 2):
        raise ValueError(
            "Points must have shape (n,) or (n, n_dim); "
            f"got an array with shape {X.shape}"
        )
    return X


def num_points(X: Any) -> int:
    if isinstance(X, RegularGrid):
        return X.count
    return jnp.shape(X)[0]
