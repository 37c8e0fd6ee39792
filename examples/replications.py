"""Replications example: sweep a queue's arrival rate over several seeds."""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from desim import Manager, ProcessSpec, Resource
from desim.utils.logger import set_default_level, setup_logger
from desim.workload import Exponential
from configs import load_run_config


def queue_system(scheduler):
    """Poisson arrivals to a single counter; returns the number served."""
    counter = Resource(scheduler, capacity=1)
    arrivals = Exponential(scheduler.params['arrival_rate'])
    service = Exponential(scheduler.params.get('service_rate', 1.0))

    def customer(s):
        arrived = s.now
        yield counter.request()
        s.metrics.record('wait', s.now - arrived, s.now)
        yield s.schedule_timeout(service.sample(s.rng))
        counter.release()
        s.metrics.increment('served')

    while True:
        yield scheduler.schedule_timeout(arrivals.sample(scheduler.rng))
        scheduler.process(customer)


def main():
    """Run a parameter sweep with replications."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    run_config, config = load_run_config(config_path, registry={'queue_system': queue_system})
    set_default_level(config['logging']['level'])

    logger = setup_logger("Replications")
    logger.info("=== Arrival Rate Sweep ===")

    if not run_config.processes:
        run_config = run_config.replace(processes=[ProcessSpec(queue_system)])
    if run_config.max_time is None:
        run_config = run_config.replace(max_time=1000.0)

    manager_config = config['manager']
    manager = Manager(
        parallelism=manager_config['parallelism'],
        retain=manager_config['retain'],
        progress=manager_config['progress'],
    )

    seeds = [run_config.seed + i for i in range(max(manager_config['replications'], 3))]
    manager.sweep(run_config, seeds=seeds, arrival_rate=[0.5, 0.7, 0.9])
    manager.run_all()

    frame = manager.results_frame()
    summary = frame.groupby('arrival_rate')[['served', 'mean_wait', 'p95_wait']].mean()

    logger.info(f"Runs: {len(frame)}, outcomes: {frame['outcome'].value_counts().to_dict()}")
    logger.info(f"\n{summary.to_string()}")

    logger.info("Sweep complete!")


if __name__ == "__main__":
    main()
