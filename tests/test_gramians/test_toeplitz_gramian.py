# mypy: ignore-errors

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from tinygram import (
    DimensionMismatch,
    RegularGrid,
    SingularSystem,
    ToeplitzGramian,
    gramian,
    kernels,
)
from tinygram.test_utils import assert_allclose
from tinygram.traits import InputTrait


@pytest.fixture(
    params=[
        kernels.Exp(0.3),
        kernels.Exp(0.05),
        kernels.Matern32(0.02),
        0.5 * kernels.Exp(0.2) + kernels.Constant(0.1),
    ]
)
def kernel(request):
    return request.param


@pytest.mark.parametrize("n", [2, 17, 100, 257])
def test_matmul_matches_generic(random, kernel, n):
    x = jnp.linspace(0, 1, n)
    G = gramian(kernel, x)
    assert isinstance(G, ToeplitzGramian)
    ref = gramian(kernel, x, structure="generic")

    v = random.standard_normal(n)
    expect = ref @ v
    assert np.max(np.abs(G @ v - expect)) < 1e-10 * np.max(np.abs(expect))

    m = random.standard_normal((n, 3))
    assert_allclose(G @ m, ref @ m)
    assert_allclose(jnp.asarray(m).T @ G, m.T @ ref.to_dense())


def test_solve(random, kernel):
    n = 150
    x = jnp.linspace(0, 1, n)
    G = gramian(kernel, x)
    y = random.standard_normal(n)
    sol = G.solve(y)
    K = G.to_dense()
    residual = np.linalg.norm(K @ sol - y) / np.linalg.norm(y)
    assert residual < 1e-8
    assert_allclose(sol, np.linalg.solve(K, y))

    Y = random.standard_normal((n, 4))
    assert_allclose(G.solve(Y), np.linalg.solve(K, Y))


def test_log_determinant(kernel):
    x = jnp.linspace(0, 1, 60)
    G = gramian(kernel, x)
    sign, expect = np.linalg.slogdet(G.to_dense())
    assert sign > 0
    assert_allclose(G.log_determinant(), expect)
    assert np.all(G.pivots() > 0)


def test_singular_solve():
    # Constant kernel: every entry is identical so the 2 by 2 block is singular
    kernel = kernels.Custom(
        lambda x, y: jnp.ones_like(x - y), trait=InputTrait.ISOTROPIC
    )
    G = gramian(kernel, jnp.linspace(0, 1, 5))
    assert isinstance(G, ToeplitzGramian)
    with pytest.raises(SingularSystem) as exc:
        G.solve(jnp.ones(5))
    assert exc.value.order == 2


def test_evaluate_and_diagonal():
    kernel = kernels.Matern32(0.5)
    grid = RegularGrid(start=0.0, step=0.1, count=12)
    G = gramian(kernel, grid)
    K = G.to_dense()
    for i in range(12):
        for j in range(0, 12, 5):
            assert_allclose(G.evaluate(i, j), K[i, j])
    assert_allclose(G.diagonal(), jnp.diag(K))
    assert G.transpose() is G
    assert G.is_symmetric
    assert G.shape == (12, 12)
    assert_allclose(G.row_points, grid.to_array())

    with pytest.raises(DimensionMismatch):
        G.evaluate(12, 0)
    with pytest.raises(DimensionMismatch):
        G.evaluate(0, -1)


def test_dimension_mismatch():
    G = gramian(kernels.Exp(), jnp.linspace(0, 1, 10))
    with pytest.raises(DimensionMismatch):
        G @ jnp.ones(9)
    with pytest.raises(DimensionMismatch):
        G.solve(jnp.ones(11))


def test_invalid_construction():
    with pytest.raises(ValueError):
        ToeplitzGramian(kernels.Exp(), jnp.linspace(0, 1, 5), jnp.ones(4))
    with pytest.raises(ValueError):
        ToeplitzGramian(kernels.Exp(), jnp.linspace(0, 1, 5), jnp.ones((5, 1)))


def test_inside_jit(random):
    kernel = kernels.Exp(0.3)
    G = gramian(kernel, jnp.linspace(0, 1, 40))
    y = random.standard_normal(40)

    @jax.jit
    def impl(G, y):
        return G.solve(G @ y)

    assert_allclose(impl(G, y), y)
