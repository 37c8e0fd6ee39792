"""Seeded distributions for stochastic time deltas.

All samplers draw from the ``numpy.random.Generator`` owned by a scheduler,
so two runs with the same seed see the same sequence of deltas.
"""

import numpy as np
from typing import Dict, Any


class Distribution:
    """Base class for time delta distributions.

    Subclasses implement ``_draw``; ``sample`` clamps the result at zero since
    a time delta can only move the clock forward.
    """

    def sample(self, rng: np.random.Generator) -> float:
        """Draw one non-negative time delta.

        Args:
            rng: Random number generator of the owning scheduler

        Returns:
            Sampled delta
        """
        return max(0.0, float(self._draw(rng)))

    def _draw(self, rng: np.random.Generator) -> float:
        raise NotImplementedError

    def mean(self) -> float:
        raise NotImplementedError

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in vars(self).items())
        return f"{self.__class__.__name__}({params})"


class Constant(Distribution):
    """Always returns the same delta."""

    def __init__(self, value: float):
        if value < 0:
            raise ValueError("Constant delta cannot be negative")
        self.value = value

    def _draw(self, rng):
        return self.value

    def mean(self):
        return self.value


class Exponential(Distribution):
    """Exponential inter-event times (memoryless arrivals)."""

    def __init__(self, rate: float):
        if rate <= 0:
            raise ValueError("Exponential rate must be positive")
        self.rate = rate

    def _draw(self, rng):
        return rng.exponential(1.0 / self.rate)

    def mean(self):
        return 1.0 / self.rate


class Poisson(Distribution):
    """Poisson distributed integer deltas."""

    def __init__(self, lam: float):
        if lam < 0:
            raise ValueError("Poisson lambda cannot be negative")
        self.lam = lam

    def _draw(self, rng):
        return rng.poisson(self.lam)

    def mean(self):
        return self.lam


class Gamma(Distribution):
    """Gamma distributed deltas (shape < 1 gives bursty behaviour)."""

    def __init__(self, shape: float, scale: float = 1.0):
        if shape <= 0 or scale <= 0:
            raise ValueError("Gamma shape and scale must be positive")
        self.shape = shape
        self.scale = scale

    def _draw(self, rng):
        return rng.gamma(self.shape, self.scale)

    def mean(self):
        return self.shape * self.scale


class LogNormal(Distribution):
    """Log-normal deltas; ``mean`` and ``sigma`` are those of the underlying normal."""

    def __init__(self, mu: float, sigma: float):
        if sigma < 0:
            raise ValueError("LogNormal sigma cannot be negative")
        self.mu = mu
        self.sigma = sigma

    def _draw(self, rng):
        return rng.lognormal(self.mu, self.sigma)

    def mean(self):
        return float(np.exp(self.mu + self.sigma ** 2 / 2))


class Uniform(Distribution):
    """Uniform deltas in ``[low, high)``."""

    def __init__(self, low: float, high: float):
        if low < 0 or high < low:
            raise ValueError("Uniform bounds must satisfy 0 <= low <= high")
        self.low = low
        self.high = high

    def _draw(self, rng):
        return rng.uniform(self.low, self.high)

    def mean(self):
        return (self.low + self.high) / 2


def create_distribution(config: Dict[str, Any]) -> Distribution:
    """Build a distribution from a configuration mapping.

    Args:
        config: Mapping with a ``distribution`` key and its parameters, e.g.
            ``{'distribution': 'gamma', 'shape': 7.0, 'scale': 1.0}``

    Returns:
        Distribution instance
    """
    dist_type = config.get('distribution', 'constant')

    if dist_type == 'constant':
        return Constant(config.get('value', config.get('mean', 1.0)))
    elif dist_type == 'exponential':
        if 'rate' in config:
            return Exponential(config['rate'])
        return Exponential(1.0 / config.get('mean', 1.0))
    elif dist_type == 'poisson':
        return Poisson(config.get('lambda', config.get('mean', 1.0)))
    elif dist_type == 'gamma':
        return Gamma(config.get('shape', 1.0), config.get('scale', 1.0))
    elif dist_type == 'lognormal':
        return LogNormal(config.get('mu', 0.0), config.get('sigma', 1.0))
    elif dist_type == 'uniform':
        return Uniform(config.get('low', 0.0), config.get('high', 1.0))
    else:
        raise ValueError(f"Unknown distribution: {dist_type}")
