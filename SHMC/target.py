"""
Description:
    Target posterior generators.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1

Every generator returns a Posterior whose functions take (q, X, B, param).
Gradients come from jax.grad.
"""
import jax.numpy as jnp
from SHMC.datatypes import Posterior, PrecisionMatrix
from SHMC.hamiltonian import posterior_from_logprob

def gen_gaussian(
        dim: int = 2,
        precision_matrix: PrecisionMatrix = None,
        cov: jnp.ndarray = None
) -> Posterior:
    """Zero-mean Gaussian; X, B and param are ignored"""
    if precision_matrix is not None and cov is not None:
        raise ValueError(
            "Please supply either a precision_matrix or a cov, not both"
        )

    if precision_matrix is None and cov is not None:
        precision_matrix = jnp.linalg.inv(cov)

    if precision_matrix is None and cov is None:
        precision_matrix = jnp.eye(dim)

    def logprob(q, X, B, param):
        """Gaussian log density (unnormalized)"""
        return -0.5 * jnp.dot(q, precision_matrix @ q)

    return posterior_from_logprob(logprob)

def gen_perturb_precision(
        dim: int = 2,
        perturbation: float = 0.05
) -> PrecisionMatrix:
    prec = jnp.diag(jnp.ones(dim))
    prec += perturbation * jnp.diag(jnp.ones(dim-1), k=-1 )
    prec += perturbation * jnp.diag(jnp.ones(dim-1), k=1 )
    return prec

def gen_linear_regression() -> Posterior:
    """
    Bayesian linear regression on a basis expansion:
        y ~ N(X @ B @ q, sigma^2 I),  q ~ N(0, prior_scale^2 I)

    X: (n, k) design matrix, B: (k, d) basis / structure matrix.
    param: mapping with "y" (n,), "sigma" and "prior_scale".
    """
    def logprob(q, X, B, param):
        resid = param["y"] - X @ (B @ q)
        loglik = -0.5 * jnp.dot(resid, resid) / param["sigma"]**2
        logprior = -0.5 * jnp.dot(q, q) / param["prior_scale"]**2
        return loglik + logprior

    return posterior_from_logprob(logprob)

def linear_regression_moments(X, B, param) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Exact posterior (mean, cov) for gen_linear_regression"""
    XB = X @ B
    dim = XB.shape[1]
    prec = XB.T @ XB / param["sigma"]**2 + jnp.eye(dim) / param["prior_scale"]**2
    cov = jnp.linalg.inv(prec)
    mean = cov @ (XB.T @ param["y"]) / param["sigma"]**2
    return mean, cov

def gen_truncated_gaussian() -> Posterior:
    """
    Standard Gaussian restricted to the positive orthant.
    log π is -inf outside the support.
    """
    def logprob(q, X, B, param):
        return jnp.where(jnp.all(q > 0), -0.5 * jnp.dot(q, q), -jnp.inf)

    return posterior_from_logprob(logprob)
