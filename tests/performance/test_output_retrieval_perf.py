from __future__ import annotations

import time

import pytest

from shellbridge.config import AppConfig
from shellbridge.terminal import EventEmitter, TerminalRegistry


@pytest.mark.performance
def test_terminal_allocation_loop_stays_within_budget() -> None:
    registry = TerminalRegistry(config=AppConfig())

    started = time.perf_counter()
    for index in range(1000):
        terminal = registry.get_or_create_terminal(f"/repo/{index % 3}", f"task-{index % 5}")
        if index % 2:
            terminal.busy = False
    elapsed = time.perf_counter() - started

    assert len(registry.terminals) <= 501
    assert elapsed < 2.0, f"terminal allocation loop exceeded budget: {elapsed:.3f}s"


@pytest.mark.performance
def test_event_fan_out_throughput_stays_within_budget() -> None:
    emitter = EventEmitter()
    received: list[str] = []
    for _ in range(5):
        emitter.on("line", received.append)

    started = time.perf_counter()
    for index in range(20000):
        emitter.emit("line", f"chunk-{index}\n")
    elapsed = time.perf_counter() - started

    assert len(received) == 100000
    assert elapsed < 2.0, f"event fan-out exceeded budget: {elapsed:.3f}s"
