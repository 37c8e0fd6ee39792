"""Tests for the scheduler main loop."""

import unittest

from desim.core.errors import (
    Interrupt,
    InvalidDuration,
    InvalidRequest,
    SimulationError,
    UnknownProcess,
)
from desim.core.event_queue import Event
from desim.core.process import ProcessState
from desim.core.simulator import RunOutcome, RunStatus, Scheduler, TraceRecord


def sleeper(scheduler, duration, log=None):
    yield scheduler.schedule_timeout(duration)
    if log is not None:
        log.append((scheduler.now, scheduler.active_process.name))
    return scheduler.now


class TestScheduler(unittest.TestCase):
    """Test cases for Scheduler."""

    def test_scheduler_initialization(self):
        """Test scheduler initialization."""
        scheduler = Scheduler(seed=3)

        self.assertEqual(scheduler.now, 0.0)
        self.assertEqual(scheduler.status, RunStatus.IDLE)
        self.assertIsNone(scheduler.outcome)
        self.assertTrue(scheduler.queue.is_empty())
        self.assertEqual(scheduler.processes, {})

    def test_empty_run_completes(self):
        """Test a run with nothing to do completes at time zero."""
        scheduler = Scheduler()

        self.assertEqual(scheduler.run(), RunOutcome.COMPLETED)
        self.assertEqual(scheduler.now, 0.0)
        self.assertEqual(scheduler.status, RunStatus.COMPLETED)

    def test_process_ids_are_sequential(self):
        """Test process ids follow registration order."""
        scheduler = Scheduler()

        first = scheduler.process(sleeper, 1)
        second = scheduler.add_process(sleeper, 2)

        self.assertEqual(first.pid, 0)
        self.assertEqual(second, 1)
        self.assertEqual(first.state, ProcessState.SCHEDULED)

    def test_body_must_be_generator(self):
        """Test plain functions are rejected as process bodies."""
        scheduler = Scheduler()

        with self.assertRaises(TypeError):
            scheduler.process(lambda s: None)

    def test_timeout_resumes_exactly(self):
        """Test Timeout(5) at t resumes at exactly t + 5."""
        scheduler = Scheduler()
        seen = []

        def body(s):
            yield s.schedule_timeout(3)
            seen.append(s.now)
            resumed_at = yield s.schedule_timeout(5)
            seen.append(s.now)
            seen.append(resumed_at)

        scheduler.process(body)
        scheduler.run()

        self.assertEqual(seen, [3.0, 8.0, 8.0])

    def test_clock_equals_event_time_and_never_decreases(self):
        """Test handlers observe their event's time and the clock is monotonic."""
        scheduler = Scheduler()
        observed = []

        for delay in [4.0, 1.0, 3.0, 1.0, 2.5]:
            scheduler.schedule_callback(delay, lambda d=delay: observed.append((d, scheduler.now)))

        scheduler.run()

        for expected, now in observed:
            self.assertEqual(expected, now)
        times = [record.time for record in scheduler.trace]
        self.assertEqual(times, sorted(times))

    def test_schedule_at(self):
        """Test resuming at an absolute time."""
        scheduler = Scheduler()
        seen = []

        def body(s):
            yield s.schedule_timeout(2)
            yield s.schedule_at(7)
            seen.append(s.now)

        scheduler.process(body)
        scheduler.run()

        self.assertEqual(seen, [7.0])

    def test_schedule_at_in_the_past_fails(self):
        """Test schedule_at rejects times before the clock."""
        scheduler = Scheduler()

        def body(s):
            yield s.schedule_timeout(5)
            yield s.schedule_at(1)

        process = scheduler.process(body)
        scheduler.run()

        self.assertEqual(process.state, ProcessState.FAILED)
        self.assertIsInstance(process.error, InvalidDuration)

    def test_negative_timeout_rejected_at_call_site(self):
        """Test InvalidDuration surfaces in the body before suspending."""
        scheduler = Scheduler()
        caught = []

        def careful(s):
            try:
                s.schedule_timeout(-1)
            except InvalidDuration:
                caught.append(s.now)
            yield s.schedule_timeout(1)

        def careless(s):
            yield s.schedule_timeout(-1)

        good = scheduler.process(careful)
        bad = scheduler.process(careless)
        scheduler.run()

        self.assertEqual(caught, [0.0])
        self.assertEqual(good.state, ProcessState.TERMINATED)
        self.assertEqual(bad.state, ProcessState.FAILED)
        self.assertIsInstance(bad.error, InvalidDuration)

    def test_wait_for_scenario(self):
        """Test A times out at 10, B times out at 5 then waits for A."""
        scheduler = Scheduler()

        def proc_a(s):
            yield s.schedule_timeout(10)
            return "a-done"

        def proc_b(s, other):
            yield s.schedule_timeout(5)
            finished = yield s.wait_for(other)
            return (s.now, finished.value)

        a = scheduler.process(proc_a, name="A")
        b = scheduler.process(proc_b, a.pid, name="B")

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.COMPLETED)
        self.assertEqual(scheduler.now, 10.0)
        self.assertEqual(b.value, (10.0, "a-done"))
        self.assertEqual(scheduler.trace, [
            TraceRecord(0.0, 0, "start"),
            TraceRecord(0.0, 1, "start"),
            TraceRecord(5.0, 1, "timeout"),
            TraceRecord(10.0, 0, "timeout"),
            TraceRecord(10.0, 0, "terminate"),
            TraceRecord(10.0, 1, "wait_for"),
            TraceRecord(10.0, 1, "terminate"),
        ])

    def test_wait_for_finished_process_is_deferred(self):
        """Test waiting on a finished process resumes after the current turn."""
        scheduler = Scheduler()
        log = []

        def quick(s):
            yield s.schedule_timeout(1)

        def waiter(s, target):
            yield s.schedule_timeout(2)
            log.append(("waiter-yield", s.now))
            finished = yield s.wait_for(target)
            log.append(("waiter-resumed", s.now, finished.state))

        def bystander(s):
            log.append(("bystander", s.now))
            yield s.yield_turn()

        target = scheduler.process(quick)
        scheduler.process(waiter, target)
        scheduler.process(bystander, delay=2, priority=1)
        scheduler.run()

        self.assertEqual(log, [
            ("waiter-yield", 2.0),
            ("bystander", 2.0),
            ("waiter-resumed", 2.0, ProcessState.TERMINATED),
        ])

    def test_wait_for_unknown_process_fails(self):
        """Test WaitFor on a nonexistent id fails the requester."""
        scheduler = Scheduler()

        def body(s):
            yield s.wait_for(99)

        process = scheduler.process(body)
        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.COMPLETED)
        self.assertEqual(process.state, ProcessState.FAILED)
        self.assertIsInstance(process.error, UnknownProcess)

    def test_failed_process_is_isolated(self):
        """Test a failing body does not stop the run and waiters see the failure."""
        scheduler = Scheduler()

        def broken(s):
            yield s.schedule_timeout(1)
            raise ValueError("boom")

        def watcher(s, target):
            finished = yield s.wait_for(target)
            return (finished.state, type(finished.error).__name__)

        def worker(s):
            yield s.schedule_timeout(5)
            return "worked"

        bad = scheduler.process(broken)
        watch = scheduler.process(watcher, bad)
        work = scheduler.process(worker)

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.COMPLETED)
        self.assertEqual(bad.state, ProcessState.FAILED)
        self.assertIsInstance(bad.error, ValueError)
        self.assertEqual(watch.value, (ProcessState.FAILED, "ValueError"))
        self.assertEqual(work.value, "worked")
        self.assertEqual(scheduler.now, 5.0)

    def test_yield_turn_ordering(self):
        """Test yield_turn lets same-time processes go first."""
        scheduler = Scheduler()
        log = []

        def body(s, label):
            log.append(f"{label}1")
            yield s.yield_turn()
            log.append(f"{label}2")

        scheduler.process(body, "a")
        scheduler.process(body, "b")
        scheduler.run()

        self.assertEqual(log, ["a1", "b1", "a2", "b2"])
        self.assertEqual(scheduler.now, 0.0)

    def test_bare_yield_is_yield_turn(self):
        """Test a bare yield behaves like yield_turn."""
        scheduler = Scheduler()
        log = []

        def body(s, label):
            log.append(label)
            yield
            log.append(label.upper())

        scheduler.process(body, "a")
        scheduler.process(body, "b")
        scheduler.run()

        self.assertEqual(log, ["a", "b", "A", "B"])

    def test_invalid_request_fails_process(self):
        """Test yielding a non-request fails the process."""
        scheduler = Scheduler()

        def body(s):
            yield 42

        process = scheduler.process(body)
        scheduler.run()

        self.assertEqual(process.state, ProcessState.FAILED)
        self.assertIsInstance(process.error, InvalidRequest)

    def test_wait_until(self):
        """Test WaitUntil resumes when the condition first holds."""
        scheduler = Scheduler()
        state = {'ready': False}
        seen = []

        def setter(s):
            yield s.schedule_timeout(3)
            state['ready'] = True

        def waiter(s):
            result = yield s.wait_until(lambda: state['ready'])
            seen.append((s.now, result))

        scheduler.process(waiter)
        scheduler.process(setter)
        scheduler.run()

        self.assertEqual(seen, [(3.0, True)])

    def test_wait_until_already_true(self):
        """Test a condition that already holds resumes at the current time."""
        scheduler = Scheduler()
        seen = []

        def waiter(s):
            yield s.schedule_timeout(2)
            yield s.wait_until(lambda: True)
            seen.append(s.now)

        scheduler.process(waiter)
        scheduler.run()

        self.assertEqual(seen, [2.0])

    def test_wait_until_never_true(self):
        """Test a process waiting on a condition that never holds stays waiting."""
        scheduler = Scheduler()

        def waiter(s):
            yield s.wait_until(lambda: False)

        process = scheduler.process(waiter)
        scheduler.process(sleeper, 4)

        self.assertEqual(scheduler.run(), RunOutcome.COMPLETED)
        self.assertEqual(process.state, ProcessState.WAITING)
        self.assertEqual(scheduler.now, 4.0)

    def test_interrupt(self):
        """Test interrupting a sleeping process."""
        scheduler = Scheduler()

        def victim(s):
            try:
                yield s.schedule_timeout(10)
            except Interrupt as interrupt:
                return (s.now, interrupt.cause)
            return "slept"

        def interrupter(s, target):
            yield s.schedule_timeout(4)
            s.interrupt(target, "wake up")

        target = scheduler.process(victim)
        scheduler.process(interrupter, target)
        scheduler.run()

        self.assertEqual(target.value, (4.0, "wake up"))
        self.assertEqual(scheduler.now, 4.0)

    def test_interrupt_finished_process_raises(self):
        """Test interrupting a finished process is an error."""
        scheduler = Scheduler()
        target = scheduler.process(sleeper, 1)
        scheduler.run()

        with self.assertRaises(SimulationError):
            scheduler.interrupt(target)

    def test_kill_wakes_waiters(self):
        """Test killing a process terminates it and wakes its waiters."""
        scheduler = Scheduler()

        def killer(s, target):
            yield s.schedule_timeout(2)
            s.kill(target)

        def waiter(s, target):
            finished = yield s.wait_for(target)
            return (s.now, finished.state)

        target = scheduler.process(sleeper, 100)
        scheduler.process(killer, target)
        watch = scheduler.process(waiter, target)
        scheduler.run()

        self.assertEqual(target.state, ProcessState.TERMINATED)
        self.assertEqual(watch.value, (2.0, ProcessState.TERMINATED))
        self.assertEqual(scheduler.now, 2.0)

    def test_max_events_exhausts(self):
        """Test max_events=1 with events at t=1 and t=2 stops after the first."""
        scheduler = Scheduler(max_events=1)
        fired = []

        scheduler.schedule_callback(1, lambda: fired.append(1))
        scheduler.schedule_callback(2, lambda: fired.append(2))

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.EXHAUSTED)
        self.assertEqual(fired, [1])
        self.assertEqual(scheduler.now, 1.0)
        self.assertEqual(scheduler.events_processed, 1)
        self.assertEqual(scheduler.status, RunStatus.ABORTED)

    def test_max_events_not_exceeded_completes(self):
        """Test a run whose last event uses up max_events still completes."""
        scheduler = Scheduler(max_events=1)
        fired = []

        scheduler.schedule_callback(1, lambda: fired.append(1))

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.COMPLETED)
        self.assertEqual(fired, [1])
        self.assertEqual(scheduler.status, RunStatus.COMPLETED)
        self.assertIsNone(scheduler.diagnostic)

    def test_max_time_exhausts(self):
        """Test events after max_time are not executed."""
        scheduler = Scheduler(max_time=5.5)
        ticks = []

        def ticker(s):
            while True:
                ticks.append(s.now)
                yield s.schedule_timeout(1)

        scheduler.process(ticker)
        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.EXHAUSTED)
        self.assertEqual(ticks, [0.0, 1.0, 2.0, 3.0, 4.0, 5.0])
        self.assertEqual(scheduler.now, 5.5)

    def test_run_until(self):
        """Test run(until=...) bounds the run like max_time."""
        scheduler = Scheduler()
        scheduler.process(sleeper, 10)

        self.assertEqual(scheduler.run(until=3), RunOutcome.EXHAUSTED)
        self.assertEqual(scheduler.now, 3.0)

    def test_request_stop_aborts_between_events(self):
        """Test a stop request takes effect before the next event."""
        scheduler = Scheduler()
        fired = []

        def stop():
            fired.append(scheduler.now)
            scheduler.request_stop("enough")

        scheduler.schedule_callback(1, stop)
        scheduler.schedule_callback(2, lambda: fired.append(scheduler.now))

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.ABORTED)
        self.assertEqual(fired, [1.0])
        self.assertEqual(scheduler.now, 1.0)
        self.assertEqual(scheduler.diagnostic, "enough")

    def test_stop_condition(self):
        """Test a stop condition aborts the run."""
        scheduler = Scheduler()
        for delay in range(1, 6):
            scheduler.schedule_callback(delay, lambda: None)

        outcome = scheduler.run(stop_condition=lambda s: s.now >= 3)

        self.assertEqual(outcome, RunOutcome.ABORTED)
        self.assertEqual(scheduler.now, 3.0)

    def test_cancel_callback(self):
        """Test cancelled callbacks never fire."""
        scheduler = Scheduler()
        fired = []

        handle = scheduler.schedule_callback(1, lambda: fired.append("cancelled"))
        scheduler.schedule_callback(2, lambda: fired.append("kept"))

        self.assertTrue(scheduler.cancel(handle))
        self.assertEqual(scheduler.peek(), 2.0)
        scheduler.run()

        self.assertEqual(fired, ["kept"])
        self.assertFalse(scheduler.cancel(handle))

    def test_causality_violation_aborts(self):
        """Test an event in the past aborts the run with a diagnostic."""
        scheduler = Scheduler()
        scheduler.now = 5.0
        scheduler.queue.insert(Event(time=1.0))

        outcome = scheduler.run()

        self.assertEqual(outcome, RunOutcome.ABORTED)
        self.assertIn("popped with clock at 5.0", scheduler.diagnostic)

    def test_run_twice_raises(self):
        """Test a scheduler can only be run once."""
        scheduler = Scheduler()
        scheduler.run()

        with self.assertRaises(SimulationError):
            scheduler.run()

    def test_determinism(self):
        """Test identical configuration gives identical traces."""
        def customer(s, index):
            for _ in range(5):
                yield s.schedule_timeout(float(s.rng.integers(0, 4)))
                s.metrics.increment('visits')
                yield s.yield_turn()
            return index

        def build(seed):
            scheduler = Scheduler(seed=seed)
            for index in range(4):
                scheduler.process(customer, index)
            scheduler.run()
            return scheduler

        first = build(11)
        second = build(11)

        self.assertEqual(first.trace, second.trace)
        self.assertEqual(first.now, second.now)
        self.assertEqual(first.metrics['visits'], 20)

    def test_finished_processes_release_continuations(self):
        """Test terminated processes hold no generator and no pending event."""
        scheduler = Scheduler()
        process = scheduler.process(sleeper, 1)
        scheduler.run()

        self.assertEqual(process.state, ProcessState.TERMINATED)
        self.assertIsNone(process._generator)
        self.assertIsNone(process.pending_event)
        self.assertEqual(process.finished_at, 1.0)
        self.assertEqual(scheduler.live_processes, [])

    def test_metrics_collection(self):
        """Test metrics recorded by bodies are aggregated."""
        scheduler = Scheduler()

        def body(s):
            for value in [1.0, 2.0, 3.0]:
                yield s.schedule_timeout(1)
                s.metrics.record('wait', value, s.now)

        scheduler.process(body)
        scheduler.run()
        metrics = scheduler.metrics.compute_metrics()

        self.assertEqual(metrics['count_wait'], 3)
        self.assertAlmostEqual(metrics['mean_wait'], 2.0)
        self.assertAlmostEqual(metrics['median_wait'], 2.0)
        self.assertIn("count_wait: 3", scheduler.metrics.get_summary())

    def test_time_weighted_metrics(self):
        """Test timestamped observations yield a time-weighted mean."""
        scheduler = Scheduler()

        def body(s):
            for delay, length in [(0, 0), (1, 2), (2, 1), (1, 0)]:
                yield s.schedule_timeout(delay)
                s.metrics.record('queue', length, s.now)
            s.metrics.record('untimed', 1.0)
            s.metrics.record('untimed', 3.0)

        scheduler.process(body)
        scheduler.run()
        metrics = scheduler.metrics.compute_metrics()

        self.assertAlmostEqual(metrics['twa_queue'], 1.25)
        self.assertAlmostEqual(metrics['mean_queue'], 0.75)
        self.assertNotIn('twa_untimed', metrics)
        self.assertEqual(scheduler.snapshot().metrics['twa_queue'], metrics['twa_queue'])

    def test_snapshot(self):
        """Test the terminal snapshot reports clock, outcome and states."""
        scheduler = Scheduler(seed=4, name="snap")

        def ok(s):
            yield s.schedule_timeout(2)
            return "done"

        def bad(s):
            yield s.schedule_timeout(1)
            raise ValueError("nope")

        scheduler.process(ok)
        scheduler.process(bad)
        scheduler.run()
        snapshot = scheduler.snapshot(run_id=7)

        self.assertEqual(snapshot.run_id, 7)
        self.assertEqual(snapshot.seed, 4)
        self.assertEqual(snapshot.final_clock, 2.0)
        self.assertEqual(snapshot.outcome, RunOutcome.COMPLETED)
        self.assertEqual(snapshot.process_values, {0: "done"})
        self.assertIn("nope", snapshot.failures[1])
        self.assertEqual(snapshot.count_states()['failed'], 1)


if __name__ == '__main__':
    unittest.main()
