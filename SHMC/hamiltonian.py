"""
Description:
    Hamiltonian structures for static HMC.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1

Sign convention: the "Hamiltonian" here is the log joint density
    H(q,p) = log π(q) - 0.5 * p.T@ M^{-1}@ p
i.e. the negative of the physical energy U(q) + K(p). The Metropolis ratio is
then exp(H_new - H_old).
"""
from typing import Any, NamedTuple
import jax
import jax.numpy as jnp
from SHMC.datatypes import QP, Posterior, LogProb
from SHMC.mass import Metric

class Hamiltonian(NamedTuple):
    """
    Binds a posterior to the data it is evaluated with.

    X and B (design / structure matrices) and param are passed through
    unchanged to logprob and grad_logprob and never modified.
    """
    posterior: Posterior
    X: Any
    B: Any
    param: Any

    def logprob(self, q: jnp.ndarray) -> float:
        """log π(q)"""
        return self.posterior.logprob(q, self.X, self.B, self.param)

    def grad_q(self, q: jnp.ndarray) -> jnp.ndarray:
        """∇_q log π(q)"""
        g = jnp.asarray(self.posterior.grad_logprob(q, self.X, self.B, self.param))
        if g.shape != q.shape:
            raise ValueError(
                f"grad_logprob returned shape {g.shape}, expected {q.shape}"
            )
        return g

    def energy(self, qp: QP, Minv: Metric) -> float:
        """H(q,p) = log π(q) - 0.5 p.T Minv p"""
        return self.logprob(qp.q) - kinetic(qp.p, Minv)

def kinetic(p: jnp.ndarray, Minv: Metric) -> float:
    """K(p) = 0.5 * p.T@ M^{-1}@ p"""
    return 0.5 * Minv.quadratic_form(p)

# Hamiltonian constructors

def posterior_from_logprob(logprob: LogProb) -> Posterior:
    """
    Build a Posterior whose gradient comes from jax.grad (w.r.t. q).

    logprob must be written with jax.numpy.
    """
    return Posterior(logprob=logprob, grad_logprob=jax.grad(logprob, argnums=0))
