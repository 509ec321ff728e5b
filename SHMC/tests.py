"""
Test suite for SHMC.

Checks the leapfrog integrator against the analytical map for a simple
harmonic oscillator, and the StaticHMC kernel's transition semantics.
"""

from pathlib import Path

import jax
import jax.numpy as jnp
import jax.random as jr
import numpy as np
import pytest
from typer.testing import CliRunner

from SHMC.config import AppConfig, ChainConfig, KernelConfig, load_app_config
from SHMC.datatypes import QP, GradLogProb, Posterior
from SHMC.hamiltonian import Hamiltonian
from SHMC.integrator import lf_step, lf_integrate
from SHMC.mass import (
    DenseMetric, DiagonalMetric, as_metric, dense_from_covariance, diagonal_from_variance,
)
from SHMC.metrics import cov, ess_batch_means, maxdiagdiff
from SHMC.run import app, sample_gaussian
from SHMC.sampler import StaticHMC, accept_prob, run_chain
from SHMC.target import (
    gen_gaussian, gen_linear_regression, gen_perturb_precision, gen_truncated_gaussian,
    linear_regression_moments,
)

# Enable 64-bit precision
jax.config.update("jax_enable_x64", True)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def regression():
    """Small regression problem: X (40, 3), B (3, 2), 2 parameters"""
    rng = np.random.default_rng(7)
    X = jnp.asarray(rng.standard_normal((40, 3)))
    B = jnp.asarray(rng.standard_normal((3, 2)))
    q_true = jnp.array([0.7, -1.2])
    y = X @ B @ q_true + 0.5 * jnp.asarray(rng.standard_normal(40))
    param = {"y": y, "sigma": 0.5, "prior_scale": 2.0}
    return X, B, param


def std_normal_kernel(q0=0.0, **kwargs) -> StaticHMC:
    return StaticHMC(jnp.array([q0]), None, None, None, gen_gaussian(dim=1), **kwargs)


# ============================================================================
# Analytical Solutions
# ============================================================================

def leapfrog_analytic(x: np.ndarray, tau: float) -> np.ndarray:
    """
    Analytical p-first leapfrog step for simple harmonic oscillator, x = [q, p]
    """
    LF_step = np.array([
        [1 - tau**2/2, tau],
        [-tau + tau**3/4, 1 - tau**2/2]
    ])
    return LF_step @ x


# ============================================================================
# Leapfrog
# ============================================================================

def test_leapfrog():
    """Test leapfrog integrator against analytical solution"""
    tau = 0.1
    H = Hamiltonian(gen_gaussian(dim=1), None, None, None)
    Minv = as_metric(1.0)

    x0_flat = jr.normal(jr.PRNGKey(1), shape=(2,))
    x_lf = lf_step(QP.from_array(x0_flat), H, tau, Minv)

    x_analytic = leapfrog_analytic(np.array(x0_flat), tau)
    np.testing.assert_allclose(np.array(x_lf.to_array()), x_analytic, atol=1e-12)


def test_leapfrog_reversibility(regression):
    """Forward N steps, flip p, forward N steps returns to (q0, -p0)"""
    X, B, param = regression
    H = Hamiltonian(gen_linear_regression(), X, B, param)
    _, post_cov = linear_regression_moments(X, B, param)
    Minv = DenseMetric(M=post_cov)

    k1, k2 = jr.split(jr.PRNGKey(3))
    qp0 = QP(q=jr.normal(k1, (2,)), p=jr.normal(k2, (2,)))
    qpT = lf_integrate(qp0, H, 0.05, Minv, 25)
    qp_back = lf_integrate(QP(q=qpT.q, p=-qpT.p), H, 0.05, Minv, 25)

    np.testing.assert_allclose(np.array(qp_back.q), np.array(qp0.q), atol=1e-9)
    np.testing.assert_allclose(np.array(qp_back.p), -np.array(qp0.p), atol=1e-9)


def max_energy_error(ε: float, N: int) -> float:
    kernel = StaticHMC(jnp.zeros(2), None, None, None, gen_gaussian(dim=2))
    Minv = as_metric(jnp.ones(2))
    z = QP(q=jnp.array([1.0, -0.5]), p=jnp.array([0.0, 0.3]))
    H0 = kernel.hamiltonian(z, Minv)
    err = 0.0
    for _ in range(N):
        z = kernel.evolve(z, ε, Minv)
        err = max(err, abs(float(kernel.hamiltonian(z, Minv) - H0)))
    return err


def test_energy_error_scales_with_eps_squared():
    err_coarse = max_energy_error(0.1, 200)
    err_fine = max_energy_error(0.05, 200)
    print(f"max |ΔH| ε=0.1: {err_coarse:.2e}, ε=0.05: {err_fine:.2e}")

    # (q0^2 + p0^2) summed over coordinates is 1.34
    assert err_coarse < 0.1**2 * 2.5
    assert err_fine < 0.05**2 * 2.5
    assert err_fine / err_coarse < 0.35

    # Bounded, does not grow with trajectory length
    assert max_energy_error(0.1, 1000) < 1.5 * err_coarse


# ============================================================================
# Hamiltonian / mass matrix
# ============================================================================

def test_diagonal_and_dense_metrics_agree(regression):
    X, B, param = regression
    kernel = StaticHMC(jnp.zeros(2), X, B, param, gen_linear_regression())
    m = jnp.array([0.5, 2.0])
    diag, dense = DiagonalMetric(m=m), DenseMetric(M=jnp.diag(m))
    z = QP(q=jnp.array([0.3, -0.1]), p=jnp.array([1.5, -0.7]))

    assert np.isclose(float(kernel.hamiltonian(z, diag)), float(kernel.hamiltonian(z, dense)))
    z_diag = kernel.evolve(z, 0.1, diag)
    z_dense = kernel.evolve(z, 0.1, dense)
    np.testing.assert_allclose(np.array(z_diag.to_array()), np.array(z_dense.to_array()))


def test_hamiltonian_is_minus_inf_outside_support():
    kernel = StaticHMC(jnp.array([1.0]), None, None, None, gen_truncated_gaussian())
    z = QP(q=jnp.array([-1.0]), p=jnp.array([0.3]))
    assert float(kernel.hamiltonian(z, jnp.ones(1))) == -np.inf


def test_momentum_covariance_matches_mass_matrix():
    target_cov = jnp.array([[1.0, 0.6], [0.6, 2.0]])
    _, Misqrt = dense_from_covariance(target_cov)
    M = jnp.linalg.inv(target_cov)
    z = QP.from_position(jnp.zeros(2))

    keys = jr.split(jr.PRNGKey(0), 20_000)
    ps = jax.vmap(lambda k: z.sample_p(Misqrt, k).p)(keys)
    np.testing.assert_allclose(np.array(cov(ps)), np.array(M), atol=0.05)

    _, Misqrt_diag = diagonal_from_variance(jnp.array([4.0, 0.25]))
    ps = jax.vmap(lambda k: z.sample_p(Misqrt_diag, k).p)(keys)
    np.testing.assert_allclose(np.array(jnp.var(ps, axis=0)), [0.25, 4.0], rtol=0.05)


# ============================================================================
# Kernel configuration
# ============================================================================

def test_update_L():
    kernel = std_normal_kernel()
    kernel.update_L(0.3)
    assert kernel.get_L() == 3
    kernel.update_L(2.0)
    assert kernel.get_L() == 1

    kernel.set_T(2.5)
    assert kernel.get_L() == 1 # not recomputed until update_L
    kernel.update_L(0.5)
    assert kernel.get_L() == 5


def test_set_T_ignores_non_positive():
    kernel = std_normal_kernel()
    kernel.set_T(0.0)
    kernel.set_T(-3.0)
    assert kernel.T == 1.0
    kernel.update_L(0.25)
    assert kernel.get_L() == 4


def test_update_L_rejects_non_positive_step():
    with pytest.raises(ValueError):
        std_normal_kernel().update_L(0.0)


def test_precondition_checks():
    with pytest.raises(ValueError):
        QP.from_position(jnp.zeros((2, 2)))

    kernel = StaticHMC(jnp.zeros(2), None, None, None, gen_gaussian(dim=2))
    with pytest.raises(ValueError):
        kernel.transition(0.1, jnp.ones(3), jnp.ones(3))
    with pytest.raises(ValueError):
        kernel.transition(0.1, jnp.ones(2), jnp.eye(2))
    with pytest.raises(ValueError):
        as_metric(jnp.ones((2, 3)))

    bad = Posterior(
        logprob=lambda q, X, B, param: -0.5 * jnp.dot(q, q),
        grad_logprob=lambda q, X, B, param: jnp.zeros(3),
    )
    kernel = StaticHMC(jnp.zeros(2), None, None, None, bad)
    with pytest.raises(ValueError):
        kernel.evolve(QP(q=jnp.zeros(2), p=jnp.ones(2)), 0.1, jnp.ones(2))


def test_hamiltonian_and_evolve_check_dimensions():
    kernel = StaticHMC(jnp.zeros(2), None, None, None, gen_gaussian(dim=2))
    z = QP(q=jnp.array([1.0, -0.5]), p=jnp.array([0.2, 0.3]))

    # a length-1 diagonal would otherwise broadcast over both coordinates
    with pytest.raises(ValueError, match="dimension"):
        kernel.evolve(z, 0.1, jnp.ones(1))
    with pytest.raises(ValueError, match="dimension"):
        kernel.evolve(z, 0.1, 1.0)
    with pytest.raises(ValueError, match="dimension"):
        kernel.hamiltonian(z, jnp.eye(3))

    # momentum and position disagree
    with pytest.raises(ValueError, match="shape"):
        kernel.hamiltonian(QP(q=z.q, p=jnp.ones(3)), jnp.ones(2))
    with pytest.raises(ValueError, match="shape"):
        kernel.evolve(QP(q=jnp.zeros(3), p=jnp.zeros(3)), 0.1, jnp.ones(2))


def test_numpy_integer_seed():
    a = StaticHMC(jnp.zeros(1), None, None, None, gen_gaussian(dim=1), key=np.int64(3))
    b = StaticHMC(jnp.zeros(1), None, None, None, gen_gaussian(dim=1), key=3)
    np.testing.assert_array_equal(np.array(a.key), np.array(b.key))
    out_a = a.transition(0.1, jnp.ones(1), jnp.ones(1))
    out_b = b.transition(0.1, jnp.ones(1), jnp.ones(1))
    np.testing.assert_array_equal(np.array(out_a.theta), np.array(out_b.theta))


def test_gradient_must_be_traceable():
    assert Posterior.__annotations__["grad_logprob"] is GradLogProb

    # NumPy gradient: fine eagerly, fails once traced inside transition
    numpy_grad = Posterior(
        logprob=lambda q, X, B, param: -0.5 * jnp.dot(q, q),
        grad_logprob=lambda q, X, B, param: -np.asarray(q),
    )
    kernel = StaticHMC(jnp.zeros(1), None, None, None, numpy_grad)
    z = QP(q=jnp.array([0.5]), p=jnp.array([0.1]))
    kernel.evolve(z, 0.1, jnp.ones(1))
    with pytest.raises(jax.errors.TracerArrayConversionError):
        kernel.transition(0.1, jnp.ones(1), jnp.ones(1))


# ============================================================================
# Transition
# ============================================================================

def test_accept_prob_range():
    rng = np.random.default_rng(0)
    for H0, H in rng.normal(scale=50.0, size=(500, 2)):
        assert 0.0 <= accept_prob(H0, H) <= 1.0
    assert accept_prob(0.0, 0.0) == 1.0
    assert accept_prob(-1.0, np.inf) == 1.0
    assert accept_prob(0.0, -np.inf) == 0.0
    assert accept_prob(np.nan, 0.0) == 1.0


def test_end_to_end_standard_normal():
    """1-D N(0,1), Minv = Misqrt = 1, T = 1, ε = 0.1 (L = 10), q0 = 0"""
    ε = 0.1
    kernel = std_normal_kernel(key=jr.PRNGKey(11))
    kernel.set_T(1.0)
    kernel.update_L(ε)
    assert kernel.get_L() == 10

    # Leapfrog conserves (1 - ε^2/4) q^2 + p^2 exactly, so with q0 = 0
    # H_T - H_0 = -ε^2 q_T^2 / 8.
    Minv = as_metric(1.0)
    z0 = QP(q=jnp.array([0.0]), p=jnp.array([1.3]))
    zT = lf_integrate(z0, kernel._H, ε, Minv, kernel.get_L())
    dH = float(kernel.hamiltonian(zT, Minv) - kernel.hamiltonian(z0, Minv))
    assert np.isclose(dH, -ε**2 * float(zT.q[0])**2 / 8, atol=1e-12)
    assert abs(dH) < 1e-2

    out = kernel.transition(ε, 1.0, 1.0)
    assert out.accept_prob > 0.99
    assert out.theta.shape == (1,)
    if out.theta[0] != 0.0:
        assert np.isclose(out.accept_prob, np.exp(-ε**2 * float(out.theta[0])**2 / 8), rtol=1e-10)
    assert not kernel.is_divergent()


def test_rejection_restores_state_exactly():
    # Huge steps on the truncated Gaussian: proposals are either outside
    # the support or far out in the tail.
    kernel = StaticHMC(jnp.array([0.1]), None, None, None, gen_truncated_gaussian(), key=5)
    kernel.set_T(10.0)
    kernel.update_L(10.0)

    n_rejected = 0
    for _ in range(20):
        q_before = np.array(kernel.z.q)
        out = kernel.transition(10.0, jnp.ones(1), jnp.ones(1))
        if out.accept_prob < 1e-8:
            n_rejected += 1
            assert np.array_equal(np.array(out.theta), q_before)
            assert np.array_equal(np.array(kernel.z.q), q_before)
    assert n_rejected > 0


def test_divergence_flag_is_monotone():
    param = {"poison": True}

    def logprob(q, X, B, param):
        if param["poison"]:
            return jnp.nan
        return -0.5 * jnp.dot(q, q)

    posterior = Posterior(logprob=logprob, grad_logprob=lambda q, X, B, param: -q)
    kernel = StaticHMC(jnp.array([0.5]), None, None, param, posterior, key=2)
    kernel.update_L(0.1)
    assert not kernel.is_divergent()

    q_before = np.array(kernel.z.q)
    out = kernel.transition(0.1, jnp.ones(1), jnp.ones(1))
    assert kernel.is_divergent()
    # NaN energy is treated as +inf: the divergent proposal is accepted
    assert out.accept_prob == 1.0
    assert not np.array_equal(np.array(out.theta), q_before)

    param["poison"] = False
    for _ in range(5):
        out = kernel.transition(0.1, jnp.ones(1), jnp.ones(1))
        assert 0.0 <= out.accept_prob <= 1.0
        assert kernel.is_divergent()


def test_transitions_reproducible_with_seed():
    def trace(seed):
        kernel = StaticHMC(jnp.zeros(2), None, None, None, gen_gaussian(dim=2), key=seed)
        kernel.update_L(0.2)
        return np.stack([np.array(kernel.transition(0.2, jnp.ones(2), jnp.ones(2)).theta)
                         for _ in range(5)])

    np.testing.assert_array_equal(trace(4), trace(4))
    assert not np.array_equal(trace(4), trace(5))


def test_shared_data_not_mutated(regression):
    X, B, param = regression
    X_copy, B_copy, y_copy = np.array(X), np.array(B), np.array(param["y"])
    kernel = StaticHMC(jnp.zeros(2), X, B, param, gen_linear_regression())
    kernel.update_L(0.05)
    kernel.transition(0.05, jnp.ones(2), jnp.ones(2))

    assert kernel.X is X and kernel.B is B and kernel.param is param
    np.testing.assert_array_equal(np.array(X), X_copy)
    np.testing.assert_array_equal(np.array(B), B_copy)
    np.testing.assert_array_equal(np.array(param["y"]), y_copy)


# ============================================================================
# Chains
# ============================================================================

def test_chain_recovers_regression_posterior(regression):
    X, B, param = regression
    post_mean, post_cov = linear_regression_moments(X, B, param)
    Minv, Misqrt = dense_from_covariance(post_cov)

    kernel = StaticHMC.from_config(
        jnp.zeros(2), X, B, param, gen_linear_regression(),
        KernelConfig(T=1.5, epsilon=0.15, seed=1),
    )
    out = run_chain(kernel, 1000, 0.15, Minv, Misqrt)

    assert out.samples.shape == (1000, 2)
    assert not out.divergent
    assert float(jnp.mean(out.accept_prob)) > 0.9

    sd = np.sqrt(np.diag(np.array(post_cov)))
    np.testing.assert_allclose(np.array(jnp.mean(out.samples, axis=0)), np.array(post_mean), atol=0.2 * sd.max())
    assert maxdiagdiff(cov(out.samples), post_cov) < 0.25 * sd.max()**2


def test_run_chain_rejects_empty_chain():
    with pytest.raises(ValueError):
        run_chain(std_normal_kernel(), 0, 0.1, 1.0, 1.0)


def test_ess_batch_means_iid():
    x = np.random.default_rng(0).standard_normal((400, 2))
    ess = ess_batch_means(x)
    assert ess.shape == (2,)
    assert np.all(ess > 100) and np.all(ess < 1600)
    assert ess_batch_means(x[:10]).tolist() == [10.0, 10.0]


# ============================================================================
# Config / entry point
# ============================================================================

def test_load_app_config(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text(
        "kernel:\n  T: 2.0\n  epsilon: 0.25\n  seed: 3\n"
        "chain:\n  num_samples: 10\n"
        "logging:\n  level: DEBUG\n"
    )
    config = load_app_config(path)
    assert config.kernel == KernelConfig(T=2.0, epsilon=0.25, seed=3)
    assert config.chain.num_samples == 10
    assert config.logging.level == "DEBUG"

    kernel = StaticHMC.from_config(jnp.zeros(1), None, None, None, gen_gaussian(dim=1), config.kernel)
    assert kernel.get_L() == 8

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_app_config(empty) == AppConfig()

    bad = tmp_path / "bad.yaml"
    bad.write_text("kernel:\n  epsilon: -1\n")
    with pytest.raises(ValueError):
        load_app_config(bad)


def test_sample_gaussian():
    config = AppConfig(chain=ChainConfig(num_samples=50))
    out = sample_gaussian(config, dim=3, dense=True)
    assert out.samples.shape == (50, 3)
    assert np.all(np.isfinite(np.array(out.samples)))


def test_cli(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("chain:\n  num_samples: 20\nlogging:\n  level: WARNING\n")
    result = CliRunner().invoke(app, ["--config", str(path), "--dim", "2"])
    assert result.exit_code == 0, result.output


def test_shipped_gaussian_config():
    path = Path(__file__).resolve().parent.parent / "configs" / "gaussian.yaml"
    config = load_app_config(path)
    assert config.kernel == KernelConfig(T=1.5, epsilon=0.1, seed=0)
    assert config.chain.num_samples == 2000
    assert config.logging.level == "INFO"


def test_gen_gaussian_rejects_both_parametrisations():
    with pytest.raises(ValueError):
        gen_gaussian(precision_matrix=gen_perturb_precision(2), cov=jnp.eye(2))
