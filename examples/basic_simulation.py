"""Basic simulation example: a single-server queue."""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from desim import Resource, Scheduler
from desim.utils.logger import setup_logger
from desim.workload import Exponential, periodic
from configs import load_config


def customer(scheduler, counter, service):
    """Queue for the counter, get served, leave."""
    arrived = scheduler.now
    yield counter.request()
    scheduler.metrics.record('wait', scheduler.now - arrived, scheduler.now)

    yield scheduler.schedule_timeout(service.sample(scheduler.rng))
    counter.release()
    scheduler.metrics.increment('served')


def main():
    """Run a basic simulation."""
    logger = setup_logger("BasicSimulation")

    logger.info("=== Single Server Queue ===")

    config = load_config(str(Path(__file__).parent.parent / "configs" / "default.yaml"))
    seed = config['simulation']['seed']

    arrival_rate = 0.8
    service_rate = 1.0
    horizon = 500.0

    scheduler = Scheduler(seed=seed, max_time=horizon, name="mm1")
    counter = Resource(scheduler, capacity=1, name="counter")
    service = Exponential(service_rate)

    def arrive(s):
        s.process(customer, counter, service)

    scheduler.process(periodic(arrive, distribution=Exponential(arrival_rate)))

    logger.info(f"Arrival rate: {arrival_rate}, service rate: {service_rate}, horizon: {horizon}")

    outcome = scheduler.run()
    metrics = scheduler.metrics.compute_metrics()

    logger.info("=== Results ===")
    logger.info(f"Outcome: {outcome.value} at t={scheduler.now:.1f}")
    logger.info(f"Events processed: {scheduler.events_processed}")
    logger.info(f"Customers served: {metrics.get('served', 0)}")
    logger.info(f"Mean wait: {metrics.get('mean_wait', 0.0):.2f}")
    logger.info(f"P95 wait: {metrics.get('p95_wait', 0.0):.2f}")
    logger.info(f"Still queued: {counter.queue_length}")
    logger.debug(scheduler.metrics.get_summary())

    logger.info("Simulation complete!")


if __name__ == "__main__":
    main()
