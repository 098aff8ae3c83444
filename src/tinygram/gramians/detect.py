"""
The structure detector runs once, when a Gramian is constructed, and decides
whether a kernel and point set form a Toeplitz matrix. It costs :math:`O(n)`
and it never raises: whenever the answer is uncertain, it reports no structure
and the generic representation is used instead.

Only square Gramians over regular 1-D grids are specialized. Irregular and
multi-dimensional point sets always use the generic path.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_GRID_RTOL",
    "grid_tolerance",
    "same_points",
    "is_regular_grid",
    "detect_toeplitz",
]

import logging
from typing import Any

import jax
import numpy as np

from tinygram.helpers import JAXArray, is_concrete
from tinygram.kernels.base import Kernel
from tinygram.points import RegularGrid, as_array, num_points
from tinygram.traits import TOEPLITZ_TRAITS

logger = logging.getLogger(__name__)

DEFAULT_GRID_RTOL = 1e-10

# Multiple of the coordinate rounding error accepted as grid jitter
_ROUNDING_FACTOR = 16


def same_points(X1: Any, X2: Any | None) -> bool:
    """Check if two point sets are the same without tracing either one"""
    if X2 is None or X2 is X1:
        return True
    if isinstance(X1, RegularGrid) or isinstance(X2, RegularGrid):
        if not (isinstance(X1, RegularGrid) and isinstance(X2, RegularGrid)):
            return False
        if X1.count != X2.count or not is_concrete(X1, X2):
            return False
        return bool(X1.start == X2.start) and bool(X1.step == X2.step)
    if not is_concrete(X1, X2):
        return False
    a = np.asarray(X1)
    b = np.asarray(X2)
    return a.shape == b.shape and bool(np.array_equal(a, b))


def grid_tolerance(x: Any) -> float:
    """The default relative spacing tolerance for the coordinates ``x``

    Computed grids carry rounding errors of order ``eps * max|x|`` in every
    coordinate, so the tolerance scales with the working precision of ``x``
    and with the offset of the grid relative to its step. It is never tighter
    than :data:`DEFAULT_GRID_RTOL`.
    """
    x = np.ravel(np.asarray(x))
    if x.shape[0] < 2:
        return DEFAULT_GRID_RTOL
    eps = np.finfo(np.result_type(x.dtype, np.float32)).eps
    x = x.astype(np.float64)
    step = abs(x[-1] - x[0]) / (x.shape[0] - 1)
    if step == 0 or not np.isfinite(step):
        return DEFAULT_GRID_RTOL
    scale = max(abs(x[0]), abs(x[-1]))
    return max(DEFAULT_GRID_RTOL, _ROUNDING_FACTOR * eps * scale / step)


def is_regular_grid(x: Any, rtol: float | None = None) -> bool:
    """Check if the concrete 1-D coordinates ``x`` are equally spaced

    Every spacing must agree with the mean spacing to within ``rtol`` times its
    magnitude. Repeated points (zero spacing) and non-finite coordinates are
    never considered regular.

    Args:
        x: The coordinates, with shape ``(n,)`` or ``(n, 1)``.
        rtol: The relative tolerance. Defaults to :func:`grid_tolerance`,
            which depends on the precision of ``x``.
    """
    x = np.asarray(x)
    if x.ndim == 2 and x.shape[1] == 1:
        x = x[:, 0]
    if x.ndim != 1 or x.shape[0] < 2:
        return False
    if rtol is None:
        rtol = grid_tolerance(x)
    x = x.astype(np.float64)
    diffs = np.diff(x)
    if not np.all(np.isfinite(diffs)):
        return False
    step = (x[-1] - x[0]) / (x.shape[0] - 1)
    if step == 0:
        return False
    return bool(np.max(np.abs(diffs - step)) <= rtol * np.abs(step))



def detect_toeplitz(
    kernel: Kernel,
    X1: Any,
    X2: Any | None = None,
    *,
    grid_rtol: float | None = None,
) -> JAXArray | None:
    """Compute the Toeplitz generating sequence if the Gramian has one

    Args:
        kernel: The kernel function.
        X1: The row points.
        X2: The column points. Defaults to ``X1``.
        grid_rtol: The relative tolerance on the grid spacing. Defaults to
            :func:`grid_tolerance`.

    Returns:
        The generating sequence ``t[k] = kernel(X1[0], X1[k])``, or ``None`` if
        the Gramian isn't recognized as Toeplitz.
    """
    trait = kernel.input_trait
    if trait not in TOEPLITZ_TRAITS:
        return None
    if not same_points(X1, X2):
        return None
    if num_points(X1) <= 1:
        return None

    if isinstance(X1, RegularGrid):
        points = X1.to_array()
    else:
        points = as_array(X1)
        if points.ndim == 2 and points.shape[1] != 1:
            return None
        if not is_concrete(points):
            return None
        if not is_regular_grid(points, grid_rtol):
            return None

    t = jax.vmap(kernel.evaluate, in_axes=(None, 0))(points[0], points)
    if t.ndim != 1:
        return None
    return t
