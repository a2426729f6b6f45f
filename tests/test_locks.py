import threading
import time

import pytest

from xmpp_config.locks import InitializationGate


def test_run_once_runs_initializer_once():
    gate = InitializationGate()
    calls = []
    assert gate.is_initialized() is False
    assert gate.run_once(lambda: calls.append(1)) is True
    assert gate.run_once(lambda: calls.append(2)) is False
    assert calls == [1]
    assert gate.is_initialized() is True
    assert gate.attempts == 1


def test_failed_initializer_leaves_gate_open_for_retry():
    gate = InitializationGate()

    def boom():
        raise RuntimeError("fail")

    with pytest.raises(RuntimeError):
        gate.run_once(boom)
    assert gate.is_initialized() is False
    assert gate.in_progress() is False

    assert gate.run_once(lambda: None) is True
    assert gate.attempts == 2


def test_reentrant_call_returns_without_rerunning():
    gate = InitializationGate()
    calls = []

    def init():
        calls.append("outer")
        assert gate.in_progress() is True
        assert gate.run_once(lambda: calls.append("inner")) is False

    gate.run_once(init)
    assert calls == ["outer"]


def test_concurrent_callers_wait_for_single_initializer():
    gate = InitializationGate()
    started = threading.Event()
    calls = []
    seen = []

    def slow_init():
        calls.append(threading.get_ident())
        started.set()
        time.sleep(0.05)

    def worker():
        gate.run_once(slow_init)
        seen.append(gate.is_initialized())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert seen == [True] * 8
