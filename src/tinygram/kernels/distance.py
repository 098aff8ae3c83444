"""
Minkowski metrics for :class:`tinygram.kernels.stationary.Stationary` kernels.
A stationary kernel depends on its inputs only through one of these metrics, so
on a regular 1-D grid, where every metric reduces to ``|x - y|``, its Gramian is
Toeplitz. Each metric also reports its Minkowski exponent ``p``, which
:func:`tinygram.sparsify` passes to the KD-tree ball query so the candidate
neighbourhoods use the same geometry as the kernel.
"""

from __future__ import annotations

__all__ = ["Distance", "L1Distance", "L2Distance"]

from abc import abstractmethod
from typing import ClassVar

import equinox as eqx
import jax.numpy as jnp

from tinygram.helpers import JAXArray


def _displacement(X1: JAXArray, X2: JAXArray) -> JAXArray:
    # Scalar inputs are 1-D coordinates
    return jnp.ravel(jnp.asarray(X1) - jnp.asarray(X2))


class Distance(eqx.Module):
    """The interface for a metric on input coordinates

    Attributes:
        p: The Minkowski exponent of the metric.
    """

    p: ClassVar[float]

    @abstractmethod
    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        raise NotImplementedError

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.square(self.distance(X1, X2))


class L1Distance(Distance):
    """The L1 or Manhattan distance, the default for stationary kernels"""

    p = 1.0

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.abs(_displacement(X1, X2)))


class L2Distance(Distance):
    """The L2 or Euclidean distance"""

    p = 2.0

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r2 = self.squared_distance(X1, X2)
        # Coincident points take a branch without sqrt, whose derivative is
        # infinite at zero
        coincident = jnp.equal(r2, 0)
        return jnp.where(coincident, 0.0, jnp.sqrt(jnp.where(coincident, 1.0, r2)))

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.square(_displacement(X1, X2)))
