from __future__ import annotations

__all__ = [
    "Kernel",
    "Custom",
    "Sum",
    "Product",
    "Power",
    "Constant",
    "DotProduct",
    "Polynomial",
]

from abc import abstractmethod
from typing import Any, Callable

import equinox as eqx
import jax
import jax.numpy as jnp

from tinygram.helpers import JAXArray
from tinygram.traits import InputTrait, combine


class Kernel(eqx.Module):
    """The base class for all kernel implementations

    This subclass provides default implementations to add, multiply and
    exponentiate kernels. Subclasses should accept parameters in their
    ``__init__`` and then override :func:`Kernel.evaluate` with custom behavior.
    Subclasses with exploitable input structure should also override
    :attr:`Kernel.input_trait`.
    """

    @abstractmethod
    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of input coordinates

        This method should treat ``X1`` and ``X2`` as single datapoints: scalars
        or arrays with shape ``n_dim``. The result is either a scalar or, for
        matrix-valued kernels, a square ``(p, p)`` block.
        """
        del X1, X2
        raise NotImplementedError

    @property
    def input_trait(self) -> InputTrait:
        """The structural classification of this kernel's inputs"""
        return InputTrait.GENERIC

    def evaluate_diag(self, X: JAXArray) -> JAXArray:
        """Evaluate the kernel on its diagonal"""
        return self.evaluate(X, X)

    def __call__(self, X1: JAXArray, X2: JAXArray | None = None) -> JAXArray:
        if X2 is None:
            return jax.vmap(self.evaluate_diag, in_axes=0)(X1)
        k = jax.vmap(jax.vmap(self.evaluate, in_axes=(None, 0)), in_axes=(0, None))(
            X1, X2
        )
        if k.ndim not in (2, 4):
            raise ValueError(
                "Invalid kernel shape: "
                f"expected ndim = 2 (or 4 for block kernels), got ndim={k.ndim} "
                "check the dimensions of parameters and custom kernels"
            )
        return k

    def __add__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Sum(self, other)
        return Sum(self, Constant(other))

    def __radd__(self, other: Any) -> Kernel:
        # We'll hit this first branch when using the `sum` function
        if isinstance(other, (int, float)) and other == 0:
            return self
        if isinstance(other, Kernel):
            return Sum(other, self)
        return Sum(Constant(other), self)

    def __mul__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Product(self, other)
        return Product(self, Constant(other))

    def __rmul__(self, other: Any) -> Kernel:
        if isinstance(other, Kernel):
            return Product(other, self)
        return Product(Constant(other), self)

    def __pow__(self, exponent: JAXArray | float) -> Kernel:
        return Power(self, exponent)


def _operand_trait(*kernels: Kernel) -> InputTrait:
    # Constants depend on neither input so they don't constrain the result
    traits = [k.input_trait for k in kernels if not isinstance(k, Constant)]
    if not traits:
        return InputTrait.ISOTROPIC
    return combine(*traits)


class Custom(Kernel):
    """A custom kernel class implemented as a callable

    Args:
        function: A callable with a signature and behavior that matches
            :func:`Kernel.evaluate`.
        trait: The :class:`tinygram.traits.InputTrait` of ``function``. This
            isn't checked, so only declare a structured trait if it really
            holds.
    """

    function: Callable[[Any, Any], Any] = eqx.field(static=True)
    trait: InputTrait = eqx.field(static=True, default=InputTrait.GENERIC)

    @property
    def input_trait(self) -> InputTrait:
        return self.trait

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.function(X1, X2)


class Sum(Kernel):
    """A helper to represent the sum of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    @property
    def input_trait(self) -> InputTrait:
        return _operand_trait(self.kernel1, self.kernel2)

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) + self.kernel2.evaluate(X1, X2)


class Product(Kernel):
    """A helper to represent the product of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    @property
    def input_trait(self) -> InputTrait:
        return _operand_trait(self.kernel1, self.kernel2)

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) * self.kernel2.evaluate(X1, X2)


class Power(Kernel):
    r"""A kernel raised to a scalar power

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = k_0(\mathbf{x}_i,\,\mathbf{x}_j)^P

    Args:
        kernel: The base kernel :math:`k_0`.
        exponent: The power :math:`P`.
    """

    kernel: Kernel
    exponent: JAXArray | float

    @property
    def input_trait(self) -> InputTrait:
        return self.kernel.input_trait

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.ndim(self.exponent) != 0:
            raise ValueError("The exponent of a power kernel must be a scalar")
        return self.kernel.evaluate(X1, X2) ** self.exponent


class Constant(Kernel):
    r"""This kernel returns the constant

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = c

    where :math:`c` is a parameter.

    Args:
        c: The parameter :math:`c` in the above equation.
    """

    value: JAXArray | float

    @property
    def input_trait(self) -> InputTrait:
        return InputTrait.ISOTROPIC

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del X1, X2
        if jnp.ndim(self.value) != 0:
            raise ValueError("The value of a constant kernel must be a scalar")
        return jnp.asarray(self.value)


class DotProduct(Kernel):
    r"""The dot product kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \mathbf{x}_i \cdot \mathbf{x}_j

    with no parameters.
    """

    @property
    def input_trait(self) -> InputTrait:
        return InputTrait.DOT_PRODUCT

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.ndim(X1) == 0:
            return X1 * X2
        return X1 @ X2


class Polynomial(Kernel):
    r"""A polynomial kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = [(\mathbf{x}_i / \ell) \cdot
            (\mathbf{x}_j / \ell) + \sigma^2]^P

    Args:
        order: The power :math:`P`.
        scale: The parameter :math:`\ell`.
        sigma: The parameter :math:`\sigma`.
    """

    order: JAXArray | float
    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    sigma: JAXArray | float = eqx.field(default_factory=lambda: jnp.zeros(()))

    @property
    def input_trait(self) -> InputTrait:
        return InputTrait.DOT_PRODUCT

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.ndim(X1) == 0:
            dot = (X1 / self.scale) * (X2 / self.scale)
        else:
            dot = (X1 / self.scale) @ (X2 / self.scale)
        return (dot + jnp.square(self.sigma)) ** self.order
