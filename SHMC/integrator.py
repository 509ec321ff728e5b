"""
Description:
    Leapfrog integrator for Hamiltonian dynamics.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1
"""
import jax
from SHMC.datatypes import QP
from SHMC.hamiltonian import Hamiltonian
from SHMC.mass import Metric

def lf_step(
        qp: QP,
        hamiltonian: Hamiltonian,
        ε: float,
        Minv: Metric
) -> QP:
    """
    Single lf integration step.

    Does p-first. Gradients are of log π, so momentum moves uphill:
        p <- p + ε/2 ∇log π(q)
        q <- q + ε Minv p
        p <- p + ε/2 ∇log π(q)
    """
    # Half step momentum
    p_half = qp.p + 0.5 * ε * hamiltonian.grad_q(qp.q)

    # Full step position
    q_new = qp.q + ε * Minv.apply(p_half)

    # Half step momentum
    p_new = p_half + 0.5 * ε * hamiltonian.grad_q(q_new)

    return QP(q=q_new, p=p_new)

def lf_integrate(
    qp: QP,
    hamiltonian: Hamiltonian,
    ε: float,
    Minv: Metric,
    N: int
) -> QP:
    """
    LF integration using scan.

    Args:
        qp: Initial state
        hamiltonian: Posterior bound to its data
        ε: Step size
        Minv: Inverse mass matrix
        N: Number of steps

    Returns:
        Final state after N steps
    """
    def body_fn(qp_state, _):
        qp_new = lf_step(qp_state, hamiltonian, ε, Minv)
        return qp_new, None

    qp_final, _ = jax.lax.scan(body_fn, qp, None, length=N)
    return qp_final
