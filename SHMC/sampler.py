"""
Description:
    Static HMC transition kernel and a single-chain driver.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1
"""

import logging
import math
import numbers
from functools import partial
from typing import Any, Optional, Union

import jax
import jax.numpy as jnp
import jax.random as jr

from SHMC.config import KernelConfig
from SHMC.datatypes import QP, Posterior, TransitionOutput, ChainOutput
from SHMC.hamiltonian import Hamiltonian
from SHMC.integrator import lf_step, lf_integrate
from SHMC.mass import Metric, check_metric, check_metric_pair

logger = logging.getLogger(__name__)

def accept_prob(H0: float, H: float) -> float:
    """
    Metropolis acceptance probability min(1, exp(H - H0)).

    H is the log joint density (see hamiltonian.py), so a larger H is better.
    A NaN energy gap gives 1.0.
    """
    delta_H = H - H0
    if delta_H < 0:
        return math.exp(delta_H)
    return 1.0

class StaticHMC:
    """
    HMC with a fixed integration time T and L = max(1, floor(T/ε)) leapfrog steps.

    The kernel owns its phase space point z for the whole run and replaces it on
    every transition. X, B and param are held by reference and handed unchanged
    to the posterior.

    L is only recomputed by update_L(); call it whenever ε or T changes.
    Once a transition yields a NaN energy, divergent stays True for the
    lifetime of the kernel.
    """

    def __init__(
        self,
        q0: jnp.ndarray,
        X: Any,
        B: Any,
        param: Any,
        posterior: Posterior,
        key: Optional[Union[jax.Array, int]] = None,
    ):
        self.T = 1.0
        self.L = 1
        self.divergent = False
        self.z = QP.from_position(q0)
        self.X = X
        self.B = B
        self.param = param
        self.posterior = posterior
        self._H = Hamiltonian(posterior=posterior, X=X, B=B, param=param)
        # compiled once per distinct L
        self._integrate = jax.jit(partial(lf_integrate, hamiltonian=self._H), static_argnames=["N"])
        if key is None:
            key = 0
        self.key = jr.PRNGKey(int(key)) if isinstance(key, numbers.Integral) else key

    @classmethod
    def from_config(cls, q0, X, B, param, posterior: Posterior, config: KernelConfig) -> "StaticHMC":
        """Kernel seeded from config.seed with T set and L derived from config.epsilon"""
        kernel = cls(q0, X, B, param, posterior, key=config.seed)
        kernel.set_T(config.T)
        kernel.update_L(config.epsilon)
        return kernel

    def set_T(self, t: float) -> None:
        """Set the integration time. Non-positive values are ignored."""
        if t > 0:
            self.T = float(t)
        else:
            logger.debug("set_T(%s) ignored, keeping T=%s", t, self.T)

    def update_L(self, epsilon: float) -> None:
        if epsilon <= 0:
            raise ValueError(f"Step size must be positive, got {epsilon}")
        self.L = max(1, int(self.T / epsilon))

    def get_L(self) -> int:
        return self.L

    def is_divergent(self) -> bool:
        return self.divergent

    def _checked(self, z: QP, Minv: Union[Metric, jnp.ndarray]) -> Metric:
        if z.q.shape != self.z.q.shape or z.p.shape != z.q.shape:
            raise ValueError(
                f"Point has q shape {z.q.shape} and p shape {z.p.shape}, "
                f"kernel position has shape {self.z.q.shape}"
            )
        return check_metric(Minv, self.z.dim)

    def hamiltonian(self, z: QP, Minv: Union[Metric, jnp.ndarray]) -> float:
        """log π(z.q) - 0.5 z.p' Minv z.p; -inf where log π is -inf"""
        return self._H.energy(z, self._checked(z, Minv))

    def evolve(self, z: QP, epsilon: float, Minv: Union[Metric, jnp.ndarray]) -> QP:
        """One leapfrog step of size epsilon from z"""
        return lf_step(z, self._H, epsilon, self._checked(z, Minv))

    def transition(
        self,
        epsilon: float,
        Minv: Union[Metric, jnp.ndarray],
        Misqrt: Union[Metric, jnp.ndarray],
    ) -> TransitionOutput:
        """
        One HMC step from the current point.

        Args:
            epsilon: Leapfrog step size (L must already match it, see update_L)
            Minv: Inverse mass matrix, vector (diagonal) or matrix (dense)
            Misqrt: Mass matrix square root, same representation as Minv

        Returns:
            TransitionOutput(theta, accept_prob)
        """
        Minv, Misqrt = check_metric_pair(Minv, Misqrt, self.z.dim)
        self.key, key_p, key_u = jr.split(self.key, 3)

        # Resample momentum
        self.z = self.z.sample_p(Misqrt, key_p)
        z_init = self.z.copy()

        H0 = float(self._H.energy(self.z, Minv))

        # Integrate
        self.z = self._integrate(qp=self.z, ε=epsilon, Minv=Minv, N=self.L)

        h = float(self._H.energy(self.z, Minv))
        if math.isnan(h):
            if not self.divergent:
                logger.warning(
                    "Divergent transition (NaN energy) with epsilon=%s, L=%d", epsilon, self.L
                )
            self.divergent = True
            h = math.inf

        alpha = accept_prob(H0, h)

        # Accept/reject
        u = float(jr.uniform(key_u, shape=()))
        if u > alpha:
            self.z = z_init

        logger.debug("H0=%.6g H=%.6g accept_prob=%.4f accepted=%s", H0, h, alpha, u <= alpha)
        return TransitionOutput(theta=self.z.q, accept_prob=alpha)

def run_chain(
    kernel: StaticHMC,
    num_samples: int,
    epsilon: float,
    Minv: Union[Metric, jnp.ndarray],
    Misqrt: Union[Metric, jnp.ndarray],
) -> ChainOutput:
    """
    Run one chain of num_samples transitions with a fixed step size.

    Args:
        kernel: Kernel holding the current position
        num_samples: Number of transitions
        epsilon: Step size; L is recomputed once from it
        Minv: Inverse mass matrix
        Misqrt: Mass matrix square root

    Returns:
        ChainOutput(samples, accept_prob, divergent)
    """
    if num_samples < 1:
        raise ValueError(f"num_samples must be >= 1, got {num_samples}")
    kernel.update_L(epsilon)

    samples = []
    probs = []
    for _ in range(num_samples):
        out = kernel.transition(epsilon, Minv, Misqrt)
        samples.append(out.theta)
        probs.append(out.accept_prob)

    output = ChainOutput(
        samples=jnp.stack(samples, axis=0),
        accept_prob=jnp.asarray(probs),
        divergent=kernel.is_divergent(),
    )
    logger.info(
        "Chain finished: %d samples, L=%d, mean accept prob %.3f, divergent=%s",
        num_samples, kernel.get_L(), compute_accept_rate(output), output.divergent,
    )
    return output


def compute_accept_rate(samples: ChainOutput) -> float:
    """
    Mean acceptance probability over the chain.

    Args:
        samples: Output from run_chain

    Returns:
        Acceptance rate in [0, 1]
    """
    return float(jnp.mean(samples.accept_prob))
