"""Stochastic and periodic workload helpers."""

from .distributions import (
    Distribution,
    Constant,
    Exponential,
    Poisson,
    Gamma,
    LogNormal,
    Uniform,
    create_distribution,
)
from .periodic import periodic

__all__ = [
    "Distribution",
    "Constant",
    "Exponential",
    "Poisson",
    "Gamma",
    "LogNormal",
    "Uniform",
    "create_distribution",
    "periodic",
]
