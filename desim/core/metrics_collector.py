"""Collection of user metrics during a simulation run."""

import numpy as np
from typing import Any, Dict, Iterable, List, Optional
from collections import defaultdict


class MetricsCollector:
    """Collect and aggregate metrics recorded by process bodies.

    Three kinds of metrics are tracked:
    - counters, incremented with ``increment``
    - gauges, overwritten with ``set``
    - observations (time-stamped samples), appended with ``record``; when
      every sample carries a timestamp a time-weighted mean is reported too

    ``compute_metrics`` turns them into a flat dictionary that is stored in
    the run's terminal snapshot.
    """

    def __init__(self, percentiles: Optional[Iterable[float]] = None):
        """Initialize metrics collector.

        Args:
            percentiles: Percentiles computed for every observed metric
        """
        self.counters: Dict[str, float] = defaultdict(float)
        self.gauges: Dict[str, Any] = {}
        self.observations: Dict[str, List[float]] = defaultdict(list)
        self.timestamps: Dict[str, List[float]] = defaultdict(list)

        self.percentiles = list(percentiles) if percentiles is not None else [50, 90, 95, 99]

    def increment(self, name: str, by: float = 1) -> None:
        self.counters[name] += by

    def set(self, name: str, value: Any) -> None:
        self.gauges[name] = value

    def record(self, name: str, value: float, timestamp: Optional[float] = None) -> None:
        """Record one observation of a metric.

        Args:
            name: Metric name
            value: Observed value
            timestamp: Simulation time of the observation
        """
        self.observations[name].append(float(value))
        if timestamp is not None:
            self.timestamps[name].append(float(timestamp))

    def __getitem__(self, name: str) -> Any:
        if name in self.gauges:
            return self.gauges[name]
        if name in self.counters:
            return self.counters[name]
        if name in self.observations:
            return self.observations[name]
        raise KeyError(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: str) -> bool:
        return name in self.gauges or name in self.counters or name in self.observations

    def compute_metrics(self) -> Dict[str, Any]:
        """Compute aggregate metrics from collected data.

        Returns:
            Dictionary of computed metrics
        """
        results: Dict[str, Any] = {}
        results.update(self.counters)
        results.update(self.gauges)

        for name, values in self.observations.items():
            results.update(self._compute_distribution_metrics(name, values))
            results.update(self._compute_time_weighted(name, values, self.timestamps.get(name, [])))

        return results

    def _compute_distribution_metrics(self, name: str, values: List[float]) -> Dict:
        """Compute distribution statistics for a metric.

        Args:
            name: Metric name
            values: List of values

        Returns:
            Dictionary with count, mean, median, std and percentiles
        """
        if not values:
            return {}

        results = {
            f'count_{name}': len(values),
            f'mean_{name}': float(np.mean(values)),
            f'median_{name}': float(np.median(values)),
            f'std_{name}': float(np.std(values)),
        }

        for p in self.percentiles:
            results[f'p{p}_{name}'] = float(np.percentile(values, p))

        return results

    def _compute_time_weighted(self, name: str, values: List[float], timestamps: List[float]) -> Dict:
        """Time-weighted mean of a metric treated as a step function of time.

        Each value holds until the next observation; the last one only marks
        the end of the window. Needs every observation to carry a timestamp.
        """
        if len(values) < 2 or len(timestamps) != len(values):
            return {}

        times = np.asarray(timestamps)
        span = times[-1] - times[0]
        if span <= 0:
            return {}

        weighted = np.dot(np.asarray(values[:-1]), np.diff(times))
        return {f'twa_{name}': float(weighted / span)}

    def get_summary(self) -> str:
        """Get human-readable summary of metrics.

        Returns:
            Formatted string with key metrics
        """
        metrics = self.compute_metrics()
        if not metrics:
            return "No metrics collected"

        summary = ["=== Metrics Summary ==="]
        for name in sorted(metrics):
            value = metrics[name]
            if isinstance(value, float):
                summary.append(f"{name}: {value:.4f}")
            else:
                summary.append(f"{name}: {value}")
        return "\n".join(summary)
