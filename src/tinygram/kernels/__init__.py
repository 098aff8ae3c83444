"""
Kernels are typically constructed as sums, products and powers of the objects
defined in this subpackage, or by wrapping a callable with :class:`Custom`.
Each kernel reports an :class:`tinygram.traits.InputTrait`, and combinators
derive their trait from their operands, so the structure detector in
:func:`tinygram.gramian` can pick the fastest available representation.
"""

__all__ = [
    "Distance",
    "L1Distance",
    "L2Distance",
    "Kernel",
    "Custom",
    "Sum",
    "Product",
    "Power",
    "Constant",
    "DotProduct",
    "Polynomial",
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Cosine",
    "ExpSineSquared",
    "RationalQuadratic",
    "CosineWave",
    "Gradient",
]

from tinygram.kernels.base import (
    Constant,
    Custom,
    DotProduct,
    Kernel,
    Polynomial,
    Power,
    Product,
    Sum,
)
from tinygram.kernels.derivative import Gradient
from tinygram.kernels.distance import Distance, L1Distance, L2Distance
from tinygram.kernels.stationary import (
    Cosine,
    CosineWave,
    Exp,
    ExpSineSquared,
    ExpSquared,
    Matern32,
    Matern52,
    RationalQuadratic,
    Stationary,
)
