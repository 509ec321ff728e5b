"""
Description:
    Configuration and logging setup for SHMC runs.
    USE THE CORRECT ENVIRONMENT:  HMC-Research

Author: John Gallagher
Created: 2026-10-17
Last Modified: 2026-10-17
Version: 0.1

Example YAML:

    kernel:
      T: 1.0
      epsilon: 0.1
      seed: 0
    chain:
      num_samples: 1000
    logging:
      level: INFO
      rich_tracebacks: true
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

import jax
import yaml
from rich.console import Console
from rich.logging import RichHandler


@dataclass
class KernelConfig:
    """Integration time, step size and PRNG seed for a StaticHMC kernel."""

    T: float = 1.0
    epsilon: float = 0.1
    seed: int = 0

    def __post_init__(self) -> None:
        if self.epsilon <= 0:
            raise ValueError(f"kernel.epsilon must be positive, got {self.epsilon}")


@dataclass
class ChainConfig:
    num_samples: int = 1000

    def __post_init__(self) -> None:
        if self.num_samples < 1:
            raise ValueError(f"chain.num_samples must be >= 1, got {self.num_samples}")


@dataclass
class LoggingConfig:
    """Logging verbosity and formatting options."""

    level: str = "INFO"
    rich_tracebacks: bool = True


@dataclass
class AppConfig:
    kernel: KernelConfig = field(default_factory=KernelConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def enable_x64() -> None:
    """Switch JAX to 64-bit floats. Call before creating any arrays."""
    jax.config.update("jax_enable_x64", True)


def setup_logging(level: str = "INFO", rich_tracebacks: bool = True) -> None:
    """Configure the root logger with a rich handler."""
    handler = RichHandler(console=Console(), rich_tracebacks=rich_tracebacks)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )


def load_yaml(path: Union[str, Path]) -> Mapping[str, Any]:
    """Load a YAML document and return a mapping (empty for an empty file)."""
    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_app_config(path: Union[str, Path]) -> AppConfig:
    """Load AppConfig from path. Missing sections fall back to defaults."""
    raw = load_yaml(path)
    kernel = raw.get("kernel", {})
    chain = raw.get("chain", {})
    logging_cfg = raw.get("logging", {})

    return AppConfig(
        kernel=KernelConfig(
            T=float(kernel.get("T", 1.0)),
            epsilon=float(kernel.get("epsilon", 0.1)),
            seed=int(kernel.get("seed", 0)),
        ),
        chain=ChainConfig(num_samples=int(chain.get("num_samples", 1000))),
        logging=LoggingConfig(
            level=str(logging_cfg.get("level", "INFO")),
            rich_tracebacks=bool(logging_cfg.get("rich_tracebacks", True)),
        ),
    )
