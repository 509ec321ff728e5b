"""
Description:
    Core data structures for SHMC.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1

All modules import from here to ensure type consistency and avoid indexing bugs.
"""
from typing import Any, Callable, NamedTuple
import jax
import jax.numpy as jnp

class QP(NamedTuple):
    """Phase space state(q,p)"""
    q: jnp.ndarray # position
    p: jnp.ndarray # momentum

    @property
    def dim(self) -> int:
        """Dimension of configuration space"""
        return self.q.shape[0]

    @classmethod
    def from_position(cls, q0) -> "QP":
        """
        Point at position q0. Momentum is zero until the first sample_p.
        """
        q = jnp.asarray(q0, dtype=jnp.result_type(float))
        if q.ndim != 1:
            raise ValueError(
                f"Initial position must be a 1-D vector, got shape {q.shape}"
            )
        return cls(q=q, p=jnp.zeros_like(q))

    def copy(self) -> "QP":
        """Independent copy of (q,p)"""
        return QP(q=jnp.array(self.q, copy=True), p=jnp.array(self.p, copy=True))

    def sample_p(self, Msqrt, key: jax.Array) -> "QP":
        """
        Resample momentum: p = Msqrt z, z ~ N(0, I).

        Msqrt is a DiagonalMetric or DenseMetric (see mass.py); both expose apply().
        """
        if Msqrt.dim != self.dim:
            raise ValueError(
                f"Mass matrix square root has dimension {Msqrt.dim}, "
                f"position has dimension {self.dim}"
            )
        z = jax.random.normal(key, shape=self.q.shape, dtype=self.q.dtype)
        return QP(q=self.q, p=Msqrt.apply(z))

    def to_array(self) -> jnp.ndarray:
        """Convert to flat array [q,p]"""
        return jnp.concatenate([self.q, self.p])

    @classmethod
    def from_array(cls, arr: jnp.ndarray):
        """Convert from flat array[q,p]"""
        dim = arr.shape[0]//2
        return cls(q=arr[:dim], p=arr[dim:])

# Type aliases for clarity
LogProb = Callable[[jnp.ndarray, jnp.ndarray, jnp.ndarray, Any], float]
GradLogProb = Callable[[jnp.ndarray, jnp.ndarray, jnp.ndarray, Any], jnp.ndarray]
PrecisionMatrix = jnp.ndarray

class Posterior(NamedTuple):
    """
    Log posterior and its gradient, both called as f(q, X, B, param).
    logprob may return -inf at infeasible positions.

    grad_logprob is traced by jax.jit / lax.scan inside StaticHMC.transition,
    so it must be written with jax.numpy (a NumPy gradient fails there with a
    tracer conversion error). logprob is evaluated eagerly.
    """
    logprob: LogProb
    grad_logprob: GradLogProb

class TransitionOutput(NamedTuple):
    """Result of one StaticHMC.transition"""
    theta: jnp.ndarray # position after accept/reject
    accept_prob: float

class ChainOutput(NamedTuple):
    samples: jnp.ndarray # (n_samples, dim) - positions only
    accept_prob: jnp.ndarray # (n_samples,)
    divergent: bool # kernel flag at the end of the run
