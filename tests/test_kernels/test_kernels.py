# mypy: ignore-errors

import jax
import jax.numpy as jnp
import pytest

from tinygram import kernels
from tinygram.test_utils import assert_allclose
from tinygram.traits import InputTrait


@pytest.fixture
def data(random):
    x1 = random.uniform(-3, 3, (50, 3))
    x2 = random.uniform(-5, 5, (40, 3))
    return x1, x2


def test_constant(data):
    x1, x2 = data
    v = jnp.ones(3)
    with pytest.raises(ValueError):
        kernels.Constant(jnp.ones(3)).evaluate(v, v)

    factor = 2.5
    k1 = kernels.Matern32(2.5)
    assert_allclose(factor * k1(x1, x2), (factor * k1)(x1, x2))


def test_custom(data):
    x1, x2 = data
    scale = 1.5
    k1 = kernels.Custom(
        lambda X1, X2: jnp.exp(-0.5 * jnp.sum(jnp.square((X1 - X2) / scale)))
    )
    k2 = kernels.ExpSquared(scale)
    assert_allclose(k1(x1, x2), k2(x1, x2))

    kernel = kernels.Custom(
        lambda X1, X2: jnp.exp(-0.5 * jnp.square((X1 - X2) / scale))
    )
    with pytest.raises(ValueError):
        kernel(x1, x2)


def test_ops(data):
    x1, x2 = data
    k1 = 1.5 * kernels.Matern32(2.5)
    k2 = 0.9 * kernels.ExpSineSquared(scale=1.5, gamma=0.3)

    assert_allclose(k1(x1, x2) + k2(x1, x2), (k1 + k2)(x1, x2))
    assert_allclose(k1(x1, x2) * k2(x1, x2), (k1 * k2)(x1, x2))
    assert_allclose(k1(x1, x2) ** 2.5, (k1**2.5)(x1, x2))
    assert_allclose(k1(x1, x2), sum([k1])(x1, x2))


def test_dot_product(data):
    x1, x2 = data
    kernel = kernels.DotProduct()
    assert_allclose(kernel(x1, x2), jnp.dot(x1, x2.T))
    assert_allclose(kernel(x1[:, 0], x2[:, 0]), x1[:, 0][:, None] * x2[:, 0][None])


def test_polynomial_scalar_inputs(data):
    x1, x2 = data
    kernel = kernels.Polynomial(order=2, scale=0.5, sigma=1.3)
    expect = (x1[:, :1] @ x2[:, :1].T / 0.25 + 1.3**2) ** 2
    assert_allclose(kernel(x1[:, 0], x2[:, 0]), expect)


def test_cosine_wave(data):
    x1, x2 = data
    freq = jnp.array([0.3, -0.1, 0.2])
    kernel = kernels.CosineWave(freq)
    expect = jnp.cos(2 * jnp.pi * ((x1 @ freq)[:, None] - (x2 @ freq)[None, :]))
    assert_allclose(kernel(x1, x2), expect)


def test_gradient_kernel(data):
    x1, _ = data
    scale = 1.3
    kernel = kernels.Gradient(kernels.ExpSquared(scale))
    a, b = x1[0], x1[1]
    r = a - b
    k = jnp.exp(-0.5 * jnp.sum(r**2) / scale**2)
    expect = k * (jnp.eye(3) / scale**2 - jnp.outer(r, r) / scale**4)
    assert_allclose(kernel.evaluate(a, b), expect)
    assert kernel(x1[:4], x1[:5]).shape == (4, 5, 3, 3)


@pytest.mark.parametrize(
    "kernel",
    [
        kernels.Custom(lambda x, y: jnp.exp(-0.5 * jnp.sum(jnp.square(x - y)))),
        kernels.Constant(0.5),
        kernels.DotProduct(),
        kernels.Polynomial(order=1.5, scale=0.5, sigma=1.3),
        kernels.Exp(0.5),
        kernels.ExpSquared(0.5),
        kernels.Matern32(0.5),
        kernels.Matern52(0.5),
        kernels.Cosine(0.5),
        kernels.ExpSineSquared(0.5, gamma=1.5),
        kernels.RationalQuadratic(0.5, alpha=1.5),
        kernels.CosineWave(0.3),
    ],
)
def test_kernel_as_pytree(data, kernel):
    x1, x2 = data

    def check_roundtrip(kernel):
        expect = jax.jit(lambda kernel_: kernel_(x1, x2))(kernel)
        flat, spec = jax.tree_util.tree_flatten(kernel)
        calc = jax.tree_util.tree_unflatten(spec, flat)(x1, x2)
        assert_allclose(calc, expect)

    check_roundtrip(kernel)
    check_roundtrip(0.5 * kernel)
    check_roundtrip(kernel + kernel)
    check_roundtrip(kernel * kernel)


@pytest.mark.parametrize("kernel", [kernels.ExpSineSquared, kernels.RationalQuadratic])
def test_required_parameters(kernel):
    with pytest.raises(ValueError):
        kernel(0.5)


def test_traits():
    assert kernels.Matern32(1.5).input_trait is InputTrait.ISOTROPIC
    assert kernels.RationalQuadratic(alpha=1.0).input_trait is InputTrait.ISOTROPIC
    assert kernels.DotProduct().input_trait is InputTrait.DOT_PRODUCT
    assert kernels.Polynomial(order=2).input_trait is InputTrait.DOT_PRODUCT
    assert (
        kernels.CosineWave(1.0).input_trait
        is InputTrait.STATIONARY_LINEAR_FUNCTIONAL
    )
    assert kernels.Custom(lambda x, y: x * y).input_trait is InputTrait.GENERIC
    assert (
        kernels.Custom(lambda x, y: x - y, trait=InputTrait.ISOTROPIC).input_trait
        is InputTrait.ISOTROPIC
    )
    assert kernels.Gradient(kernels.Exp()).input_trait is InputTrait.GENERIC
