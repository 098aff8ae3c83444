from __future__ import annotations

__all__ = ["BarnesHut"]

import logging
from functools import partial

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from tinygram.barnes_hut.tree import DEFAULT_LEAF_SIZE, SpatialTree, build_tree
from tinygram.errors import DimensionMismatch
from tinygram.gramians.base import Gramian
from tinygram.gramians.dense import DEFAULT_CHUNK_SIZE
from tinygram.helpers import JAXArray, handle_matvec_shapes, is_concrete
from tinygram.kernels.base import Kernel

logger = logging.getLogger(__name__)


class BarnesHut(eqx.Module):
    r"""An approximate Gramian product using hierarchical far-field aggregation

    The column points of ``gramian`` are partitioned into a
    :class:`tinygram.barnes_hut.tree.SpatialTree`. For each row point
    :math:`\mathbf{x}_i` the tree is traversed from the root, and a node with
    centroid :math:`\mathbf{c}` and bounding box diameter :math:`D` is
    *admissible* when

    .. math::

        D < \theta\,||\mathbf{x}_i - \mathbf{c}||_2

    The contribution of an admissible node is approximated by
    :math:`k(\mathbf{x}_i,\,\mathbf{c})\,W` where :math:`W` is the total weight
    of its points, plus, for ``order=1``, the dipole correction
    :math:`\nabla_\mathbf{c} k(\mathbf{x}_i,\,\mathbf{c}) \cdot M` where
    :math:`M` is the first moment of the weights about the centroid. Leaves that
    are reached without becoming admissible are evaluated exactly.

    The traversal only depends on the geometry, so the resulting interaction
    lists of (row, node) pairs are computed once, here, and reused by every
    product. A product walks these lists ``chunk_size`` pairs at a time, so its
    working memory is independent of the number of exact evaluations. With
    ``theta=0`` no node is admissible and the product is exact. There is no
    error bound for general kernels; validate the accuracy against
    ``gramian @ x`` for your problem.

    The tree is not updated if the points change. Build a new factorization
    instead.

    Args:
        gramian: The Gramian to approximate. Its points must be concrete, so
            this can't be constructed inside a ``jax.jit``-compiled function.
        theta: The admissibility parameter. Must be non-negative.
        leaf_size: The maximum number of points in a tree leaf.
        order: The order of the far-field expansion: ``0`` for total weights
            only, or ``1`` to include first moments.
        chunk_size: The number of interaction pairs evaluated at once.
    """

    gramian: Gramian
    tree: SpatialTree
    theta: float = eqx.field(static=True)
    order: int = eqx.field(static=True)
    chunk_size: int = eqx.field(static=True)
    leaf_points: np.ndarray
    near_rows: np.ndarray
    near_nodes: np.ndarray
    far_rows: np.ndarray
    far_nodes: np.ndarray

    def __init__(
        self,
        gramian: Gramian,
        theta: float = 0.5,
        *,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        order: int = 0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if theta < 0:
            raise ValueError("The admissibility parameter theta must be non-negative")
        if order not in (0, 1):
            raise ValueError("Only far-field expansions of order 0 or 1 are supported")
        if chunk_size < 1:
            raise ValueError("chunk_size must be a positive integer")
        X1 = gramian.row_points
        X2 = gramian.col_points
        if not is_concrete(X1, X2):
            raise ValueError(
                "A BarnesHut factorization needs concrete points; it can't be "
                "built inside a transformed function"
            )

        self.gramian = gramian
        self.theta = float(theta)
        self.order = order
        self.chunk_size = chunk_size
        self.tree = build_tree(X2, leaf_size=leaf_size)
        self.leaf_points = self.tree.leaf_table()
        (
            self.near_rows,
            self.near_nodes,
            self.far_rows,
            self.far_nodes,
        ) = _interaction_lists(self.tree, X1, self.theta)
        logger.debug(
            "Barnes-Hut interaction lists with theta=%g: %d exact, %d far-field",
            self.theta,
            self.num_exact_evaluations,
            self.num_far_evaluations,
        )

    @property
    def kernel(self) -> Kernel:
        return self.gramian.kernel

    def size(self) -> tuple[int, int]:
        return self.gramian.size()

    @property
    def shape(self) -> tuple[int, int]:
        return self.gramian.shape

    @property
    def num_exact_evaluations(self) -> int:
        """The number of pairwise kernel evaluations per product"""
        counts = np.asarray(self.tree.end) - np.asarray(self.tree.start)
        return int(np.sum(counts[np.asarray(self.near_nodes)]))

    @property
    def num_far_evaluations(self) -> int:
        """The number of point-to-centroid kernel evaluations per product"""
        return int(self.far_rows.shape[0])

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        n, m = self.size()
        p = self.gramian.block_size
        if x.shape[0] != m * p:
            raise DimensionMismatch(
                f"Expected an operand with leading dimension {m * p}; "
                f"got {x.shape[0]}"
            )
        if n == 0 or m == 0:
            return jnp.zeros((n * p, x.shape[1]), dtype=jnp.result_type(x, float))

        X2 = self.gramian.col_points
        centroids = jnp.asarray(self.tree.centroid, dtype=jnp.result_type(X2, float))
        centroids = jnp.reshape(centroids, (-1,) + X2.shape[1:])
        result = _apply(
            self.kernel,
            self.gramian.row_points,
            X2,
            centroids,
            self.tree.order,
            self.tree.start,
            self.tree.end,
            self.leaf_points,
            self.near_rows,
            self.near_nodes,
            self.far_rows,
            self.far_nodes,
            jnp.reshape(x, (m, p, -1)),
            chunk_size=self.chunk_size,
            use_moments=self.order == 1,
        )
        return jnp.reshape(result, (n * p, -1))

    def __matmul__(self, other: JAXArray) -> JAXArray:
        return self.matmul(other)


def _interaction_lists(
    tree: SpatialTree, X1: JAXArray, theta: float
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    queries = np.asarray(X1, dtype=float)
    if queries.ndim == 1:
        queries = queries[:, None]
    n = queries.shape[0]

    near_rows: list[np.ndarray] = []
    near_nodes: list[np.ndarray] = []
    far_rows: list[np.ndarray] = []
    far_nodes: list[np.ndarray] = []

    def visit(node: int, rows: np.ndarray) -> None:
        if rows.size == 0:
            return
        if theta > 0:
            dist = np.linalg.norm(queries[rows] - tree.centroid[node], axis=1)
            admissible = tree.diameter[node] < theta * dist
            if np.any(admissible):
                far_rows.append(rows[admissible])
                far_nodes.append(np.full(np.count_nonzero(admissible), node))
                rows = rows[~admissible]
                if rows.size == 0:
                    return

        if tree.is_leaf(node):
            near_rows.append(rows)
            near_nodes.append(np.full(rows.size, node))
        else:
            visit(int(tree.left[node]), rows)
            visit(int(tree.right[node]), rows)

    if n and tree.num_nodes:
        visit(0, np.arange(n))

    def concat(arrays: list[np.ndarray]) -> np.ndarray:
        return np.concatenate(arrays) if arrays else np.zeros(0, dtype=int)

    return concat(near_rows), concat(near_nodes), concat(far_rows), concat(far_nodes)


def _as_blocks(K: JAXArray, batch: int = 1, extra: int = 0) -> JAXArray:
    # Scalar kernels are treated as 1x1 blocks
    if K.ndim == batch + extra:
        return K.reshape(K.shape[:batch] + (1, 1) + K.shape[batch:])
    return K


def _chunks(chunk_size: int, *arrays: JAXArray) -> tuple[JAXArray, ...]:
    # Pad with index 0 and reshape to (num_chunks, chunk_size), returning a
    # validity mask alongside
    size = arrays[0].shape[0]
    num_chunks = -(-size // chunk_size)
    pad = num_chunks * chunk_size - size
    padded = [
        jnp.reshape(jnp.pad(a, (0, pad)), (num_chunks, chunk_size)) for a in arrays
    ]
    valid = jnp.reshape(jnp.arange(num_chunks * chunk_size) < size, padded[0].shape)
    return (*padded, valid)


@partial(jax.jit, static_argnames=("chunk_size", "use_moments"))
def _apply(
    kernel: Kernel,
    X1: JAXArray,
    X2: JAXArray,
    centroids: JAXArray,
    order: JAXArray,
    start: JAXArray,
    end: JAXArray,
    leaf_points: JAXArray,
    near_rows: JAXArray,
    near_nodes: JAXArray,
    far_rows: JAXArray,
    far_nodes: JAXArray,
    x: JAXArray,
    *,
    chunk_size: int,
    use_moments: bool,
) -> JAXArray:
    evaluate = jax.vmap(kernel.evaluate)
    dtype = jnp.result_type(jax.eval_shape(kernel.evaluate, X1[0], X2[0]).dtype, x)
    result = jnp.zeros((X1.shape[0],) + x.shape[1:], dtype=dtype)

    # Near field: each (row, leaf) pair is evaluated exactly against the padded
    # points of the leaf
    def near(result, chunk):  # type: ignore
        rows, nodes, valid = chunk
        cols = leaf_points[nodes]
        mask = valid[:, None] & (cols >= 0)
        cols = jnp.where(mask, cols, 0)
        K = jax.vmap(jax.vmap(kernel.evaluate, in_axes=(None, 0)))(X1[rows], X2[cols])
        K = jnp.where(mask[:, :, None, None], _as_blocks(K, batch=2), 0)
        contrib = jnp.einsum("clab,clbk->cak", K, x[cols])
        return result.at[rows].add(contrib.astype(dtype)), None

    if near_rows.shape[0]:
        chunks = _chunks(chunk_size, near_rows, near_nodes)
        result, _ = jax.lax.scan(near, result, chunks)

    if not far_rows.shape[0]:
        return result

    # Far field: the summary of each node, aggregated with prefix sums over the
    # tree ordering
    xp = x[order]
    zero = jnp.zeros((1,) + xp.shape[1:], dtype=xp.dtype)
    cumsum = jnp.concatenate([zero, jnp.cumsum(xp, axis=0)])
    weights = cumsum[end] - cumsum[start]

    if use_moments:
        Y = jnp.reshape(X2[order], (X2.shape[0], -1)).astype(dtype)
        C = jnp.reshape(centroids, (centroids.shape[0], -1)).astype(dtype)
        first = jnp.einsum("mbk,md->mbkd", xp, Y)
        zero = jnp.zeros((1,) + first.shape[1:], dtype=first.dtype)
        cumsum = jnp.concatenate([zero, jnp.cumsum(first, axis=0)])
        moments = (cumsum[end] - cumsum[start]) - jnp.einsum(
            "ubk,ud->ubkd", weights, C
        )

    def far(result, chunk):  # type: ignore
        rows, nodes, valid = chunk
        Kc = _as_blocks(evaluate(X1[rows], centroids[nodes]))
        contrib = jnp.einsum("nab,nbk->nak", Kc, weights[nodes])
        if use_moments:
            grad = jax.vmap(jax.jacfwd(kernel.evaluate, argnums=1))(
                X1[rows], centroids[nodes]
            )
            # Flatten the coordinate axes so 1-D and n-D inputs are treated alike
            grad = jnp.reshape(
                grad, grad.shape[: grad.ndim - centroids.ndim + 1] + (-1,)
            )
            grad = _as_blocks(grad, extra=1)
            contrib = contrib + jnp.einsum("nabd,nbkd->nak", grad, moments[nodes])
        contrib = jnp.where(valid[:, None, None], contrib, 0)
        return result.at[rows].add(contrib.astype(dtype)), None

    result, _ = jax.lax.scan(far, result, _chunks(chunk_size, far_rows, far_nodes))
    return result
