# mypy: ignore-errors

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from tinygram import BarnesHut, DimensionMismatch, gramian, kernels
from tinygram.test_utils import assert_allclose


def relative_error(approx, exact):
    return np.linalg.norm(approx - exact) / np.linalg.norm(exact)


@pytest.fixture
def data(random):
    X = random.uniform(-3, 3, (400, 2))
    x = random.standard_normal(len(X))
    return X, x


@pytest.mark.parametrize(
    "kernel",
    [
        kernels.ExpSquared(1.0),
        kernels.Matern32(0.5),
        kernels.Custom(lambda x, y: jnp.sum(x * y) + 1.0),
    ],
)
@pytest.mark.parametrize("order", [0, 1])
def test_exact_without_admissible_nodes(data, kernel, order):
    X, x = data
    G = gramian(kernel, X, structure="generic")
    bh = BarnesHut(G, theta=0.0, leaf_size=8, order=order)
    assert bh.num_far_evaluations == 0
    assert bh.num_exact_evaluations == len(X) ** 2
    assert relative_error(bh @ x, G @ x) < 1e-12


def test_error_grows_with_theta(random):
    # With uniform weights the centroid is the weighted mean, and exp(-|x - y|)
    # is convex in y on either side of x, so every far-field term
    # underestimates its node and refining a node shrinks the gap
    X = random.uniform(0, 20, 500)
    x = np.ones(len(X))
    G = gramian(kernels.Exp(1.0), X, structure="generic")
    exact = np.asarray(G @ x)
    tol = 1e-12 * np.max(exact)

    thetas = (1.0, 0.5, 0.25, 0.1, 0.0)
    factorizations = [BarnesHut(G, theta, leaf_size=4) for theta in thetas]
    gaps = [exact - np.asarray(bh @ x) for bh in factorizations]
    for gap in gaps:
        assert np.all(gap >= -tol)
    for a, b in zip(gaps, gaps[1:]):
        assert np.all(b <= a + tol)
    assert np.max(gaps[0]) > 1e3 * tol
    assert np.max(np.abs(gaps[-1])) <= tol

    exact_counts = [bh.num_exact_evaluations for bh in factorizations]
    far_counts = [bh.num_far_evaluations for bh in factorizations]
    assert all(a <= b for a, b in zip(exact_counts, exact_counts[1:]))
    assert exact_counts[0] < exact_counts[-1] == len(X) ** 2
    assert far_counts[0] > 0 and far_counts[-1] == 0



def test_work_decreases_with_theta(data):
    X, _ = data
    G = gramian(kernels.Exp(1.0), X, structure="generic")
    counts = [
        BarnesHut(G, theta, leaf_size=4).num_exact_evaluations
        for theta in (0.0, 0.25, 0.5, 1.0, 2.0)
    ]
    assert counts[0] == len(X) ** 2
    assert all(b <= a for a, b in zip(counts, counts[1:]))
    assert counts[-1] < counts[0]


def test_dipole_correction_improves_accuracy(random):
    X = random.uniform(-3, 3, (400, 2))
    x = random.uniform(0.5, 1.5, len(X))
    G = gramian(kernels.ExpSquared(2.0), X, structure="generic")
    exact = G @ x
    err0 = relative_error(BarnesHut(G, 0.5, order=0) @ x, exact)
    err1 = relative_error(BarnesHut(G, 0.5, order=1) @ x, exact)
    assert err1 < err0


def test_one_dimensional(random):
    X = np.sort(random.uniform(0, 10, 300))
    x = random.uniform(0.5, 1.5, len(X))
    G = gramian(kernels.Matern52(3.0), X, structure="generic")
    exact = G @ x
    for order in (0, 1):
        bh = BarnesHut(G, 0.3, order=order)
        assert bh.num_far_evaluations > 0
        assert relative_error(bh @ x, exact) < 0.1


def test_rectangular_and_matrix_operand(random):
    X1 = random.uniform(-1, 1, (30, 2))
    X2 = random.uniform(-1, 1, (80, 2))
    G = gramian(kernels.ExpSquared(1.0), X1, X2)
    assert G.shape == (30, 80)

    x = random.standard_normal((80, 3))
    exact = G @ x
    bh = BarnesHut(G, 0.0, leaf_size=4)
    assert bh.shape == (30, 80)
    assert_allclose(bh @ x, exact)

    approx = BarnesHut(G, 0.5, leaf_size=4, order=1) @ x
    assert approx.shape == (30, 3)


def test_block_kernel(random):
    X = random.uniform(-2, 2, (60, 2))
    kernel = kernels.ExpSquared(1.0, distance=kernels.L2Distance())
    G = gramian(kernels.Gradient(kernel), X)
    assert G.shape == (120, 120)
    x = random.standard_normal(120)
    exact = G @ x
    assert_allclose(BarnesHut(G, 0.0, leaf_size=4) @ x, exact)

    for order in (0, 1):
        approx = BarnesHut(G, 0.3, leaf_size=4, order=order) @ x
        assert approx.shape == (120,)
        assert np.all(np.isfinite(approx))


def test_toeplitz_gramian(random):
    x = random.standard_normal(200)
    G = gramian(kernels.Matern32(1.0), jnp.linspace(0, 5, 200))
    assert_allclose(BarnesHut(G, 0.0) @ x, G @ x)


def test_inside_jit(data):
    X, x = data
    G = gramian(kernels.ExpSquared(1.0), X, structure="generic")
    bh = BarnesHut(G, 0.5)
    expect = bh @ x
    assert_allclose(jax.jit(lambda bh, x: bh @ x)(bh, x), expect)


def test_invalid_arguments(data):
    X, x = data
    G = gramian(kernels.ExpSquared(1.0), X, structure="generic")
    with pytest.raises(ValueError):
        BarnesHut(G, theta=-0.1)
    with pytest.raises(ValueError):
        BarnesHut(G, order=2)
    with pytest.raises(DimensionMismatch):
        BarnesHut(G) @ x[:-1]

    @jax.jit
    def impl(X):
        return BarnesHut(gramian(kernels.ExpSquared(1.0), X), 0.5) @ x

    with pytest.raises(ValueError):
        impl(X)


@pytest.mark.parametrize("chunk_size", [1, 7, 100000])
@pytest.mark.parametrize("order", [0, 1])
def test_chunk_size(data, chunk_size, order):
    X, x = data
    G = gramian(kernels.ExpSquared(1.0), X, structure="generic")
    expect = BarnesHut(G, 0.5, order=order) @ x
    bh = BarnesHut(G, 0.5, order=order, chunk_size=chunk_size)
    assert_allclose(bh @ x, expect)
    with pytest.raises(ValueError):
        BarnesHut(G, chunk_size=0)


def test_interaction_lists_are_compact(data):
    X, _ = data
    G = gramian(kernels.ExpSquared(1.0), X, structure="generic")
    bh = BarnesHut(G, 0.0, leaf_size=8)
    # One entry per (row, leaf) pair rather than per (row, column) pair
    assert bh.near_rows.shape == (len(X) * len(bh.tree.leaves()),)
    assert bh.near_nodes.shape == bh.near_rows.shape
    assert bh.num_exact_evaluations == len(X) ** 2


def max_intermediate_size(jaxpr):
    size = 0
    for eqn in jaxpr.eqns:
        for var in eqn.outvars:
            aval = getattr(var, "aval", None)
            if aval is not None and hasattr(aval, "shape"):
                size = max(size, int(np.prod(aval.shape)))
        for param in eqn.params.values():
            inner = getattr(param, "jaxpr", param)
            if hasattr(inner, "eqns"):
                size = max(size, max_intermediate_size(inner))
    return size


def test_product_memory_is_bounded(data):
    X, x = data
    G = gramian(kernels.ExpSquared(1.0), X, structure="generic")
    bh = BarnesHut(G, 0.0, leaf_size=8, chunk_size=32)
    jaxpr = jax.make_jaxpr(lambda v: bh @ v)(x)
    assert max_intermediate_size(jaxpr.jaxpr) < len(X) ** 2 // 4
    assert_allclose(bh @ x, G @ x)
