"""Tests for the exactly-once completion gate."""

from __future__ import annotations

import threading
import time

from konfigurator.server.gate import CompletionGate


class TestCompletionGate:
    def test_wait_times_out_when_not_fired(self) -> None:
        gate = CompletionGate()
        start = time.monotonic()
        assert gate.wait(0.1) is False
        assert time.monotonic() - start >= 0.09
        assert gate.is_fired is False

    def test_first_fire_wins(self) -> None:
        gate = CompletionGate()
        assert gate.fire() is True
        assert gate.fire() is False
        assert gate.fire() is False
        assert gate.is_fired is True

    def test_wait_returns_immediately_after_fire(self) -> None:
        gate = CompletionGate()
        gate.fire()
        assert gate.wait(0) is True
        assert gate.wait() is True

    def test_wait_unblocks_from_other_thread(self) -> None:
        gate = CompletionGate()
        threading.Timer(0.05, gate.fire).start()
        assert gate.wait(5) is True

    def test_concurrent_fires_deliver_once(self) -> None:
        gate = CompletionGate()
        barrier = threading.Barrier(16)
        results: list[bool] = []
        lock = threading.Lock()

        def fire() -> None:
            barrier.wait()
            won = gate.fire()
            with lock:
                results.append(won)

        threads = [threading.Thread(target=fire) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert results.count(True) == 1
        assert results.count(False) == 15

    def test_multiple_waiters_all_released(self) -> None:
        gate = CompletionGate()
        released: list[bool] = []

        def waiter() -> None:
            released.append(gate.wait(5))

        threads = [threading.Thread(target=waiter) for _ in range(3)]
        for t in threads:
            t.start()
        gate.fire()
        for t in threads:
            t.join(5)

        assert released == [True, True, True]
