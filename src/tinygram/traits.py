"""
Every kernel in ``tinygram`` carries an :class:`InputTrait` describing how it
depends on its two inputs. The trait is resolved once, when a Gramian is
constructed, and it is what the structure detector uses to decide whether a
faster representation is available.

Combinators compute their trait from their operands using :func:`combine`: a
combination of kernels that all share a trait keeps it, anything else is
``GENERIC``.
"""

from __future__ import annotations

__all__ = ["InputTrait", "combine", "TOEPLITZ_TRAITS"]

import enum


class InputTrait(enum.Enum):
    """The input structure of a kernel function

    - ``GENERIC``: no exploitable structure.
    - ``ISOTROPIC``: depends only on the distance ``|x - y|``.
    - ``DOT_PRODUCT``: depends only on the inner product ``x . y``.
    - ``STATIONARY_LINEAR_FUNCTIONAL``: depends only on ``c . (x - y)`` for
      some fixed vector ``c``.
    """

    GENERIC = "generic"
    ISOTROPIC = "isotropic"
    DOT_PRODUCT = "dot_product"
    STATIONARY_LINEAR_FUNCTIONAL = "stationary_linear_functional"


# Traits that produce a Toeplitz Gramian on a regular 1-D grid
TOEPLITZ_TRAITS = frozenset(
    {InputTrait.ISOTROPIC, InputTrait.STATIONARY_LINEAR_FUNCTIONAL}
)


def combine(*traits: InputTrait) -> InputTrait:
    """The trait of an algebraic combination of kernels with ``traits``"""
    if not traits:
        raise ValueError("At least one trait is required")
    first = traits[0]
    if all(trait is first for trait in traits[1:]):
        return first
    return InputTrait.GENERIC
