"""
Description:
    Mass matrix representations (diagonal and dense).
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1

The kernel is handed the inverse mass matrix Minv and the square root Misqrt.
Both are wrapped in one of the classes below, so the Hamiltonian, leapfrog and
momentum draw are written once against apply() / quadratic_form().
"""
from typing import NamedTuple, Union
import jax.numpy as jnp

class DiagonalMetric(NamedTuple):
    """M = diag(m), stored as the vector m"""
    m: jnp.ndarray

    @property
    def dim(self) -> int:
        return self.m.shape[0]

    def apply(self, v: jnp.ndarray) -> jnp.ndarray:
        """M v (element-wise)"""
        return self.m * v

    def quadratic_form(self, v: jnp.ndarray) -> float:
        """v.T M v"""
        return jnp.dot(jnp.square(v), self.m)

class DenseMetric(NamedTuple):
    """Full (d, d) matrix M"""
    M: jnp.ndarray

    @property
    def dim(self) -> int:
        return self.M.shape[0]

    def apply(self, v: jnp.ndarray) -> jnp.ndarray:
        """M @ v"""
        return self.M @ v

    def quadratic_form(self, v: jnp.ndarray) -> float:
        """v.T @ M @ v"""
        return jnp.dot(v, self.M @ v)

Metric = Union[DiagonalMetric, DenseMetric]

def as_metric(M) -> Metric:
    """
    Wrap an array as a metric: 1-D -> DiagonalMetric, square 2-D -> DenseMetric.
    Metrics pass through unchanged. Python scalars are treated as a 1-D diagonal.
    """
    if isinstance(M, (DiagonalMetric, DenseMetric)):
        return M
    arr = jnp.atleast_1d(jnp.asarray(M, dtype=jnp.result_type(float)))
    if arr.ndim == 1:
        return DiagonalMetric(m=arr)
    if arr.ndim == 2 and arr.shape[0] == arr.shape[1]:
        return DenseMetric(M=arr)
    raise ValueError(
        f"Mass matrix must be a vector or a square matrix, got shape {arr.shape}"
    )

def check_metric(M, dim: int, name: str = "Minv") -> Metric:
    """Wrap M and check its dimension matches the position dimension"""
    M = as_metric(M)
    if M.dim != dim:
        raise ValueError(
            f"{name} has dimension {M.dim}, position has dimension {dim}"
        )
    return M

def check_metric_pair(Minv, Misqrt, dim: int) -> tuple[Metric, Metric]:
    """
    Wrap Minv and Misqrt and check they share a representation and dimension.
    """
    Minv = check_metric(Minv, dim, "Minv")
    Misqrt = check_metric(Misqrt, dim, "Misqrt")
    if type(Minv) is not type(Misqrt):
        raise ValueError(
            f"Minv is {type(Minv).__name__} but Misqrt is {type(Misqrt).__name__}; "
            "both must use the same mass matrix representation"
        )
    return Minv, Misqrt

def diagonal_from_variance(var: jnp.ndarray) -> tuple[DiagonalMetric, DiagonalMetric]:
    """
    (Minv, Misqrt) for a diagonal mass matrix M = diag(1/var).
    Misqrt is sqrt(M) = 1/sqrt(var), used to draw p ~ N(0, M).
    """
    var = jnp.asarray(var)
    return DiagonalMetric(m=var), DiagonalMetric(m=1.0 / jnp.sqrt(var))

def dense_from_covariance(cov: jnp.ndarray) -> tuple[DenseMetric, DenseMetric]:
    """
    (Minv, Misqrt) for a dense mass matrix M = cov^{-1}.
    Misqrt is a Cholesky factor of M, so Misqrt z ~ N(0, M).
    """
    cov = jnp.asarray(cov)
    M = jnp.linalg.inv(cov)
    return DenseMetric(M=cov), DenseMetric(M=jnp.linalg.cholesky(M))
