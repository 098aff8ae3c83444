"""
Most of the commonly used kernels are subclasses of :class:`Stationary`. Each
of these has (at least) the two parameters:

- ``scale``: A scalar lengthscale for the kernel in the radial distance
  specified by ``distance``, and
- ``distance``: A :class:`tinygram.kernels.distance.Distance` metric specifying
  how to compute the scalar distance between two input coordinates.

All of these kernels report the ``ISOTROPIC`` input trait, so they produce a
:class:`tinygram.gramians.ToeplitzGramian` when evaluated on a regular 1-D grid.
:class:`CosineWave` is the exception: it depends on a projection of the
displacement and reports ``STATIONARY_LINEAR_FUNCTIONAL``.
"""

from __future__ import annotations

__all__ = [
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Cosine",
    "ExpSineSquared",
    "RationalQuadratic",
    "CosineWave",
]


import equinox as eqx
import jax.numpy as jnp
import numpy as np

from tinygram.helpers import JAXArray
from tinygram.kernels.base import Kernel
from tinygram.kernels.distance import Distance, L1Distance, L2Distance
from tinygram.traits import InputTrait


class Stationary(Kernel):
    """A stationary kernel is defined with respect to a distance metric

    Args:
        scale: The length scale, in the same units as ``distance`` for the
            kernel. This must be a scalar.
        distance: An object that implements ``distance`` and
            ``squared_distance`` methods. Typically a subclass of
            :class:`tinygram.kernels.distance.Distance`.
    """

    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    distance: Distance = eqx.field(default_factory=L1Distance)

    @property
    def input_trait(self) -> InputTrait:
        return InputTrait.ISOTROPIC


class Exp(Stationary):
    r"""The exponential kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_1

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.ndim(self.scale):
            raise ValueError("Only scalar scales are permitted for stationary kernels")
        return jnp.exp(-self.distance.distance(X1, X2) / self.scale)


class ExpSquared(Stationary):
    r"""The exponential squared or radial basis function kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r^2 / 2)

    where, by default,

    .. math::

        r^2 = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2^2

    Args:
        scale: The parameter :math:`\ell`.
    """

    distance: Distance = eqx.field(default_factory=L2Distance)

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r2 = self.distance.squared_distance(X1, X2) / jnp.square(self.scale)
        return jnp.exp(-0.5 * r2)


class Matern32(Stationary):
    r"""The Matern-3/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{3}\,r)\,\exp(-\sqrt{3}\,r)

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        arg = np.sqrt(3) * r
        return (1 + arg) * jnp.exp(-arg)


class Matern52(Stationary):
    r"""The Matern-5/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{5}\,r +
            5\,r^2/3)\,\exp(-\sqrt{5}\,r)

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        arg = np.sqrt(5) * r
        return (1 + arg + jnp.square(arg) / 3) * jnp.exp(-arg)


class Cosine(Stationary):
    r"""The cosine kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \cos(2\,\pi\,r)

    where, by default, :math:`r = ||(\mathbf{x}_i - \mathbf{x}_j) / P||_1`.

    Args:
        scale: The parameter :math:`P`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        return jnp.cos(2 * jnp.pi * r)


class ExpSineSquared(Stationary):
    r"""The exponential sine squared or quasiperiodic kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-\Gamma\,\sin^2 \pi r)

    where, by default, :math:`r = ||(\mathbf{x}_i - \mathbf{x}_j) / P||_1`.

    Args:
        scale: The parameter :math:`P`.
        gamma: The parameter :math:`\Gamma`.
    """

    gamma: JAXArray | float | None = None

    def __check_init__(self):
        if self.gamma is None:
            raise ValueError("Missing required argument 'gamma'")

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        assert self.gamma is not None
        r = self.distance.distance(X1, X2) / self.scale
        return jnp.exp(-self.gamma * jnp.square(jnp.sin(jnp.pi * r)))


class RationalQuadratic(Stationary):
    r"""The rational quadratic

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + r^2 / 2\,\alpha)^{-\alpha}

    where, by default, :math:`r^2 = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2^2`.

    Args:
        scale: The parameter :math:`\ell`.
        alpha: The parameter :math:`\alpha`.
    """

    alpha: JAXArray | float | None = None

    def __check_init__(self):
        if self.alpha is None:
            raise ValueError("Missing required argument 'alpha'")

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        assert self.alpha is not None
        r2 = self.distance.squared_distance(X1, X2) / jnp.square(self.scale)
        return (1.0 + 0.5 * r2 / self.alpha) ** -self.alpha


class CosineWave(Kernel):
    r"""A plane wave along a fixed frequency vector

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \cos(2\,\pi\,\mathbf{c}\cdot
            (\mathbf{x}_i - \mathbf{x}_j))

    This depends on the inputs only through a linear functional of their
    displacement, so it is stationary without being isotropic in more than one
    dimension.

    Args:
        frequency: The vector :math:`\mathbf{c}`, or a scalar for 1-D inputs.
    """

    frequency: JAXArray | float

    @property
    def input_trait(self) -> InputTrait:
        return InputTrait.STATIONARY_LINEAR_FUNCTIONAL

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        tau = X1 - X2
        if jnp.ndim(tau) == 0:
            proj = self.frequency * tau
        else:
            proj = jnp.sum(self.frequency * tau)
        return jnp.cos(2 * jnp.pi * proj)
