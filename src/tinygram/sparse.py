"""
Sparse renderings of Gramians. When a kernel decays with distance, most entries
of a large Gramian are negligible and :func:`sparsify` keeps only the entries
above a tolerance. For isotropic kernels the candidate pairs come from a
nearest-neighbour ball query, so the full matrix is never scanned.
"""

from __future__ import annotations

__all__ = ["sparsify"]

import logging

import jax
import jax.numpy as jnp
import numpy as np
from scipy import sparse
from scipy.spatial import cKDTree

from tinygram.gramians.base import Gramian, block_matrix
from tinygram.helpers import JAXArray, is_concrete
from tinygram.kernels.base import Kernel
from tinygram.kernels.stationary import Stationary
from tinygram.traits import InputTrait

logger = logging.getLogger(__name__)

_NUM_BISECTIONS = 60
_NUM_MONOTONE_SAMPLES = 256


def sparsify(
    gramian: Gramian, tol: float, *, chunk_size: int = 256
) -> sparse.csr_matrix:
    """Render a Gramian as a sparse matrix, dropping entries below ``tol``

    Args:
        gramian: A Gramian with a scalar-valued kernel and concrete points.
        tol: Entries with ``|K[i, j]| < tol`` are dropped.
        chunk_size: The number of rows evaluated at once when no cutoff radius
            can be established and every entry has to be checked.

    Returns:
        A ``scipy.sparse.csr_matrix`` with the shape of ``gramian``.
    """
    if tol < 0:
        raise ValueError("The tolerance must be non-negative")
    if gramian.block_size != 1:
        raise ValueError("Only scalar-valued kernels can be sparsified")
    X1 = gramian.row_points
    X2 = gramian.col_points
    if not is_concrete(X1, X2):
        raise ValueError("Sparsification needs concrete points")

    n, m = gramian.size()
    radius = None
    if gramian.input_trait is InputTrait.ISOTROPIC and n and m:
        radius = _cutoff_radius(gramian.kernel, X1, X2, tol)

    if radius is None:
        logger.debug("No cutoff radius; scanning all %d entries", n * m)
        rows, cols, values = _exhaustive(gramian.kernel, X1, X2, tol, chunk_size)
    else:
        logger.debug("Using cutoff radius %g for sparsification", radius)
        rows, cols = _ball_pairs(X1, X2, radius, _minkowski_p(gramian.kernel))
        values = np.asarray(
            jax.vmap(gramian.kernel.evaluate)(X1[rows], X2[cols])
        )
        keep = np.abs(values) >= tol
        rows, cols, values = rows[keep], cols[keep], values[keep]

    return sparse.coo_matrix((values, (rows, cols)), shape=(n, m)).tocsr()


def _coordinates(X: JAXArray) -> np.ndarray:
    points = np.asarray(X, dtype=float)
    return points[:, None] if points.ndim == 1 else points


def _cutoff_radius(
    kernel: Kernel, X1: JAXArray, X2: JAXArray, tol: float
) -> float | None:
    if tol <= 0:
        return None
    Y1 = _coordinates(X1)
    Y2 = _coordinates(X2)
    lower = np.minimum(Y1.min(axis=0), Y2.min(axis=0))
    upper = np.maximum(Y1.max(axis=0), Y2.max(axis=0))
    diameter = float(np.linalg.norm(upper - lower))
    if diameter == 0:
        return None

    origin = X2[0]
    direction = jnp.zeros_like(origin, dtype=float)
    direction = direction.at[0].set(1.0) if direction.ndim else jnp.ones(())

    @jax.jit
    def profile(r: JAXArray) -> JAXArray:
        return jnp.abs(
            jax.vmap(lambda s: kernel.evaluate(origin, origin + s * direction))(r)
        )

    # The ball query is only valid if the kernel decays monotonically over
    # every separation that occurs in the data
    samples = np.asarray(profile(jnp.linspace(0.0, diameter, _NUM_MONOTONE_SAMPLES)))
    if np.any(np.diff(samples) > 1e-12 * samples[0]):
        return None
    if samples[-1] >= tol:
        return None
    if samples[0] < tol:
        return 0.0

    lo, hi = 0.0, diameter
    for _ in range(_NUM_BISECTIONS):
        mid = 0.5 * (lo + hi)
        if float(profile(jnp.array([mid]))[0]) < tol:
            hi = mid
        else:
            lo = mid
    return hi


def _minkowski_p(kernel: Kernel) -> float:
    # The L-infinity ball contains the balls of every other Minkowski metric, so
    # it is used when the metric of an isotropic kernel is unknown
    if isinstance(kernel, Stationary):
        return float(getattr(kernel.distance, "p", np.inf))
    return np.inf


def _ball_pairs(
    X1: JAXArray, X2: JAXArray, radius: float, p: float = 2.0
) -> tuple[np.ndarray, np.ndarray]:
    tree = cKDTree(_coordinates(X2))
    neighbors = tree.query_ball_point(_coordinates(X1), radius, p=p)
    counts = np.array([len(inds) for inds in neighbors], dtype=int)
    rows = np.repeat(np.arange(len(neighbors)), counts)
    if counts.sum() == 0:
        return rows, np.zeros(0, dtype=int)
    cols = np.concatenate([np.asarray(inds, dtype=int) for inds in neighbors])
    return rows, cols


def _exhaustive(
    kernel: Kernel, X1: JAXArray, X2: JAXArray, tol: float, chunk_size: int
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    evaluate = jax.jit(lambda A: block_matrix(kernel, A, X2)[:, :, 0, 0])
    rows, cols, values = [], [], []
    for lo in range(0, X1.shape[0], chunk_size):
        K = np.asarray(evaluate(X1[lo : lo + chunk_size]))
        i, j = np.nonzero(np.abs(K) >= tol)
        rows.append(i + lo)
        cols.append(j)
        values.append(K[i, j])
    if not rows:
        empty = np.zeros(0, dtype=int)
        return empty, empty, np.zeros(0)
    return np.concatenate(rows), np.concatenate(cols), np.concatenate(values)
