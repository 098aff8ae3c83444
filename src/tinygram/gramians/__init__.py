"""
Gramians are the lazy matrices ``K[i, j] = kernel(X1[i], X2[j])``. The
:func:`gramian` factory inspects the kernel's input trait and the point layout
once, and returns the most specialized representation available:

1. :class:`ToeplitzGramian`: for isotropic or stationary linear-functional
   kernels evaluated on a regular 1-D grid. Products use the FFT and direct
   solves use the Levinson-Durbin recursion.

2. :class:`DenseGramian`: the generic fallback, which evaluates the kernel on
   demand and works for any kernel and points.

Both implement the :class:`Gramian` interface, so downstream code doesn't need
to know which one it got.
"""

from __future__ import annotations

__all__ = [
    "Gramian",
    "DenseGramian",
    "ToeplitzGramian",
    "gramian",
    "DEFAULT_GRID_RTOL",
    "DEFAULT_CHUNK_SIZE",
]

import logging
from typing import Any

from tinygram.gramians.base import Gramian
from tinygram.gramians.dense import DEFAULT_CHUNK_SIZE, DenseGramian
from tinygram.gramians.detect import DEFAULT_GRID_RTOL, detect_toeplitz, same_points
from tinygram.gramians.toeplitz import ToeplitzGramian
from tinygram.kernels.base import Kernel

logger = logging.getLogger(__name__)


def gramian(
    kernel: Kernel,
    X1: Any,
    X2: Any | None = None,
    *,
    structure: str = "auto",
    grid_rtol: float | None = None,
    pivot_rtol: float | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Gramian:
    """Build the lazy Gramian of ``kernel`` over the points ``X1`` and ``X2``

    Args:
        kernel: The kernel function.
        X1: The row points. This can be an array with shape ``(n,)`` or
            ``(n, n_dim)``, or a :class:`tinygram.points.RegularGrid`.
        X2: The column points. Defaults to ``X1``.
        structure: ``"auto"`` (default) runs the structure detector, and
            ``"generic"`` always returns a :class:`DenseGramian`.
        grid_rtol: The relative tolerance used to decide if points are
            equally spaced. By default it scales with the precision of the
            points, see :func:`tinygram.gramians.detect.grid_tolerance`.
        pivot_rtol: The relative pivot threshold for Toeplitz direct solves.
        chunk_size: The number of rows evaluated at once by the generic
            product.
    """
    if structure not in ("auto", "generic"):
        raise ValueError(
            f"Unknown structure {structure!r}; expected 'auto' or 'generic'"
        )

    if structure == "auto":
        t = detect_toeplitz(kernel, X1, X2, grid_rtol=grid_rtol)
        if t is not None:
            logger.debug("Selected Toeplitz representation for %d points", len(t))
            return ToeplitzGramian(kernel, X1, t, pivot_rtol=pivot_rtol)

    symmetric = same_points(X1, X2)
    G = DenseGramian(
        kernel,
        X1,
        None if symmetric else X2,
        symmetric=symmetric,
        chunk_size=chunk_size,
    )
    logger.debug("Selected generic representation with size %s", G.size())
    return G
