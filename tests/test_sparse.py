# mypy: ignore-errors

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from scipy import sparse

from tinygram import gramian, kernels, sparsify
from tinygram.sparse import _ball_pairs, _minkowski_p
from tinygram.traits import InputTrait


def thresholded(G, tol):
    K = np.array(G.to_dense())
    K[np.abs(K) < tol] = 0.0
    return K


@pytest.mark.parametrize(
    "kernel,shape",
    [
        (kernels.Exp(0.1), (200,)),
        (kernels.Matern32(0.3), (300, 2)),
        (kernels.ExpSquared(0.2, distance=kernels.L2Distance()), (250, 3)),
        (kernels.Cosine(2.0), (100,)),
        (kernels.DotProduct(), (80, 2)),
        (kernels.Exp(0.2) * kernels.DotProduct(), (80, 2)),
    ],
)
def test_matches_thresholded_dense(random, kernel, shape):
    tol = 1e-3
    X = random.uniform(0, 5, shape)
    G = gramian(kernel, X)
    S = sparsify(G, tol)
    assert sparse.issparse(S)
    assert S.format == "csr"
    assert S.shape == G.shape
    np.testing.assert_allclose(S.toarray(), thresholded(G, tol), rtol=1e-12, atol=0)

    # Every stored entry is above the tolerance
    assert np.all(np.abs(S.data) >= tol)


def test_decaying_kernel_is_sparse(random):
    X = random.uniform(0, 100, 500)
    G = gramian(kernels.Matern52(0.5), X)
    S = sparsify(G, 1e-6)
    assert S.nnz < 0.2 * 500**2
    np.testing.assert_allclose(S.toarray(), thresholded(G, 1e-6), rtol=1e-12, atol=0)


def test_grid_and_rectangular(random):
    kernel = kernels.Exp(0.5)
    x = jnp.linspace(0, 20, 100)
    G = gramian(kernel, x)
    np.testing.assert_allclose(
        sparsify(G, 1e-4).toarray(), thresholded(G, 1e-4), rtol=1e-12, atol=0
    )

    X1 = random.uniform(0, 10, (40, 2))
    X2 = random.uniform(0, 10, (70, 2))
    G = gramian(kernel, X1, X2)
    S = sparsify(G, 1e-4)
    assert S.shape == (40, 70)
    np.testing.assert_allclose(S.toarray(), thresholded(G, 1e-4), rtol=1e-12, atol=0)


def test_zero_tolerance_keeps_everything(random):
    X = random.uniform(0, 5, 30)
    G = gramian(kernels.Matern32(0.1), X)
    S = sparsify(G, 0.0)
    assert S.nnz == 30 * 30


def test_large_tolerance_drops_everything(random):
    X = random.uniform(0, 5, 30)
    G = gramian(kernels.Matern32(0.1), X)
    S = sparsify(G, 10.0)
    assert S.nnz == 0
    assert S.shape == (30, 30)


def test_invalid_arguments(random):
    X = random.uniform(0, 5, (30, 2))
    G = gramian(kernels.Matern32(0.1), X)
    with pytest.raises(ValueError):
        sparsify(G, -1.0)
    with pytest.raises(ValueError):
        sparsify(gramian(kernels.Gradient(kernels.ExpSquared()), X), 1e-3)

    @jax.jit
    def impl(X):
        sparsify(gramian(kernels.Matern32(0.1), X), 1e-3)
        return X

    with pytest.raises(ValueError):
        impl(X)


def test_ball_query_uses_kernel_metric():
    assert _minkowski_p(kernels.Matern32(0.3)) == 1.0
    assert _minkowski_p(kernels.ExpSquared(distance=kernels.L2Distance())) == 2.0
    assert _minkowski_p(kernels.Exp(0.1) + kernels.Exp(0.2)) == np.inf


def test_l1_candidates_are_tighter(random):
    X = random.uniform(0, 5, (300, 2))
    rows1, cols1 = _ball_pairs(X, X, 0.5, 1.0)
    rows2, _ = _ball_pairs(X, X, 0.5, 2.0)
    assert rows1.size < rows2.size

    l1 = np.sum(np.abs(X[:, None, :] - X[None, :, :]), axis=-1)
    expect = np.argwhere(l1 <= 0.5)
    found = np.stack([rows1, cols1], axis=1)
    assert sorted(map(tuple, expect)) == sorted(map(tuple, found))


def test_unknown_isotropic_metric(random):
    # Chebyshev distance: the L2 ball misses some of its neighbours
    kernel = kernels.Custom(
        lambda X1, X2: jnp.exp(-jnp.max(jnp.abs(X1 - X2)) / 0.3),
        trait=InputTrait.ISOTROPIC,
    )
    X = random.uniform(0, 5, (200, 2))
    G = gramian(kernel, X)
    tol = 1e-3
    S = sparsify(G, tol)
    np.testing.assert_allclose(S.toarray(), thresholded(G, tol), rtol=1e-12, atol=0)
