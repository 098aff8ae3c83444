"""
A flat-array binary space partitioning tree. Points are split at the median
along the widest dimension of each node's bounding box, so the tree is balanced
and every node owns a contiguous range of the point permutation. That lets the
weight summaries of all nodes be computed from a single prefix sum.
"""

from __future__ import annotations

__all__ = ["SpatialTree", "build_tree", "DEFAULT_LEAF_SIZE"]

import logging
from typing import Any

import equinox as eqx
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_LEAF_SIZE = 16


class SpatialTree(eqx.Module):
    """The geometry of a spatial partition tree

    All per-node arrays are indexed by node, with the root at index ``0``.

    Args:
        order (m,): The permutation of the points; node ``k`` owns the points
            ``order[start[k]:end[k]]``.
        start (num_nodes,): The first position of each node in ``order``.
        end (num_nodes,): One past the last position of each node.
        left (num_nodes,): The index of the left child, or ``-1`` for leaves.
        right (num_nodes,): The index of the right child, or ``-1`` for leaves.
        lower (num_nodes, n_dim): The lower corner of each bounding box.
        upper (num_nodes, n_dim): The upper corner of each bounding box.
        centroid (num_nodes, n_dim): The mean of the points in each node.
        diameter (num_nodes,): The length of each bounding box diagonal.
    """

    order: np.ndarray
    start: np.ndarray
    end: np.ndarray
    left: np.ndarray
    right: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    centroid: np.ndarray
    diameter: np.ndarray
    leaf_size: int = eqx.field(static=True)

    @property
    def num_nodes(self) -> int:
        return self.start.shape[0]

    def is_leaf(self, node: int) -> bool:
        return bool(self.left[node] < 0)

    def leaves(self) -> np.ndarray:
        return np.flatnonzero(self.left < 0)

    def node_points(self, node: int) -> np.ndarray:
        """The indices of the points owned by ``node``"""
        return self.order[self.start[node] : self.end[node]]

    def leaf_table(self) -> np.ndarray:
        """The point indices of every leaf, padded with ``-1``

        Row ``k`` lists the points of node ``k`` if it is a leaf, and it is all
        ``-1`` otherwise. The width is the size of the largest leaf.
        """
        counts = self.end - self.start
        leaves = self.leaves()
        width = max(int(counts[leaves].max()), 1) if leaves.size else 1
        table = np.full((self.num_nodes, width), -1, dtype=int)
        for node in leaves:
            points = self.node_points(node)
            table[node, : points.size] = points
        return table


def _as_coordinates(X: Any) -> np.ndarray:
    points = np.asarray(X, dtype=float)
    if points.ndim == 1:
        points = points[:, None]
    if points.ndim != 2:
        raise ValueError(
            f"Points must have shape (n,) or (n, n_dim); got shape {points.shape}"
        )
    return points


def build_tree(X: Any, leaf_size: int = DEFAULT_LEAF_SIZE) -> SpatialTree:
    """Partition the points ``X`` into a balanced binary tree

    Args:
        X: The concrete points, with shape ``(m,)`` or ``(m, n_dim)``.
        leaf_size: The maximum number of points in a leaf. Coincident points
            are split by index, so this bound always holds.
    """
    if leaf_size < 1:
        raise ValueError("leaf_size must be a positive integer")
    points = _as_coordinates(X)
    m, ndim = points.shape
    order = np.arange(m)

    start: list[int] = []
    end: list[int] = []
    left: list[int] = []
    right: list[int] = []
    lower: list[np.ndarray] = []
    upper: list[np.ndarray] = []
    centroid: list[np.ndarray] = []

    def build(lo: int, hi: int) -> int:
        node = len(start)
        sub = points[order[lo:hi]]
        lo_corner = sub.min(axis=0)
        hi_corner = sub.max(axis=0)
        start.append(lo)
        end.append(hi)
        lower.append(lo_corner)
        upper.append(hi_corner)
        centroid.append(sub.mean(axis=0))
        left.append(-1)
        right.append(-1)

        if hi - lo <= leaf_size:
            return node

        dim = int(np.argmax(hi_corner - lo_corner))
        mid = (lo + hi) // 2
        part = np.argpartition(sub[:, dim], mid - lo)
        order[lo:hi] = order[lo:hi][part]
        left[node] = build(lo, mid)
        right[node] = build(mid, hi)
        return node

    if m:
        build(0, m)

    lower_arr = np.reshape(np.array(lower), (-1, ndim))
    upper_arr = np.reshape(np.array(upper), (-1, ndim))
    tree = SpatialTree(
        order=order,
        start=np.array(start, dtype=int),
        end=np.array(end, dtype=int),
        left=np.array(left, dtype=int),
        right=np.array(right, dtype=int),
        lower=lower_arr,
        upper=upper_arr,
        centroid=np.reshape(np.array(centroid), (-1, ndim)),
        diameter=np.linalg.norm(upper_arr - lower_arr, axis=1),
        leaf_size=leaf_size,
    )
    logger.debug(
        "Built spatial tree with %d nodes (%d leaves) over %d points",
        tree.num_nodes,
        len(tree.leaves()),
        m,
    )
    return tree
