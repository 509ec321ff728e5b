"""
SHMC: static-trajectory Hamiltonian Monte Carlo with a fixed integration time.
"""
from SHMC.datatypes import QP, Posterior, TransitionOutput, ChainOutput
from SHMC.mass import DiagonalMetric, DenseMetric, as_metric
from SHMC.hamiltonian import posterior_from_logprob
from SHMC.sampler import StaticHMC, run_chain

__all__ = [
    "QP",
    "Posterior",
    "TransitionOutput",
    "ChainOutput",
    "DiagonalMetric",
    "DenseMetric",
    "as_metric",
    "posterior_from_logprob",
    "StaticHMC",
    "run_chain",
]
