"""
Description:
    MCMC diagnostics and metrics.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1
"""
import jax.numpy as jnp
import numpy as np

def cov(X):
    Xμ = jnp.mean(X, axis = 0)
    n=X.shape[0]
    return (X - Xμ).T@(X-Xμ)/(n-1)

def maxdiagdiff(X,Y):
    x = np.diag(X)
    y = np.diag(Y)
    return np.max(np.abs(x-y))

def ess_batch_means(samples) -> np.ndarray:
    """
    Batch-means effective sample size, one value per coordinate.

    samples: (n, dim) chain. Chains shorter than 20 draws return n.
    """
    x = np.asarray(samples)
    if x.ndim == 1:
        x = x[:, None]
    n = x.shape[0]
    if n < 20:
        return np.full(x.shape[1], float(n))
    m = int(np.sqrt(n)) # number of batches
    b = n // m # batch length
    trimmed = x[: b * m]
    batch_means = trimmed.reshape(m, b, -1).mean(axis=1)
    overall_var = np.var(trimmed, axis=0)
    batch_var = np.var(batch_means, axis=0)
    return n * overall_var / (b * batch_var + 1e-12)
