"""Engine process supervision: single spawn, retry after failure, readiness."""
import threading
import time

import pytest

from ollaweb.core.errors import SpawnFailure
from ollaweb.core.schemas import ServerState
from ollaweb.core.supervisor import ProcessSupervisor


def test_concurrent_callers_spawn_exactly_once(engine):
    engine.spawn_delay = 0.05
    supervisor = ProcessSupervisor(engine)
    barrier = threading.Barrier(20)
    errors = []

    def call():
        barrier.wait()
        try:
            supervisor.ensure_running()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=call) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert errors == []
    assert engine.spawn_calls == 1
    assert supervisor.spawn_count == 1
    assert supervisor.state is ServerState.STARTING


def test_later_calls_return_without_spawning(engine):
    supervisor = ProcessSupervisor(engine)
    supervisor.ensure_running()
    supervisor.ensure_running()
    assert engine.spawn_calls == 1


def test_spawn_failure_reported_then_retried_on_next_call(engine):
    engine.spawn_failures = 1
    supervisor = ProcessSupervisor(engine)

    with pytest.raises(SpawnFailure):
        supervisor.ensure_running()
    assert supervisor.state is ServerState.NOT_STARTED

    assert supervisor.ensure_running() is ServerState.STARTING
    assert engine.spawn_calls == 2


def test_already_running_engine_is_adopted(engine):
    engine.ready = True
    supervisor = ProcessSupervisor(engine)
    assert supervisor.ensure_running() is ServerState.RUNNING
    assert engine.spawn_calls == 0
    assert supervisor.is_alive()


def test_wait_until_ready_moves_to_running(engine):
    supervisor = ProcessSupervisor(engine, initial_backoff=0.01, max_backoff=0.02)
    supervisor.ensure_running()
    threading.Timer(0.05, lambda: setattr(engine, 'ready', True)).start()

    assert supervisor.wait_until_ready(timeout=2) is True
    assert supervisor.state is ServerState.RUNNING


def test_wait_until_ready_is_bounded(engine):
    supervisor = ProcessSupervisor(engine, initial_backoff=0.01, max_backoff=0.02)
    started = time.monotonic()
    assert supervisor.wait_until_ready(timeout=0.1) is False
    assert time.monotonic() - started < 1.0
    assert supervisor.state is ServerState.STARTING


def test_spawned_process_liveness(engine):
    supervisor = ProcessSupervisor(engine)
    supervisor.ensure_running()
    # The fake process reports the test runner's own pid.
    assert supervisor.is_alive() is True
