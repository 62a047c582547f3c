from __future__ import annotations

import asyncio

import pytest
from terminal_fakes import FAST_TIMINGS, FakeProcess, FakeProcessTree, FakeSpawner

from shellbridge.config import AppConfig
from shellbridge.errors import DoubleInitializationError, ExitCode, ShellBridgeError
from shellbridge.terminal import InProcessHost, TerminalRegistry


def _registry(*processes: FakeProcess, host: InProcessHost | None = None) -> TerminalRegistry:
    return TerminalRegistry(
        host,
        config=AppConfig(timings=FAST_TIMINGS),
        process_tree=FakeProcessTree(),
        spawner=FakeSpawner(*processes),
    )


@pytest.mark.asyncio
async def test_concurrent_requests_receive_distinct_busy_terminals() -> None:
    registry = _registry()

    async def claim(index: int):
        await asyncio.sleep(0)
        return registry.get_or_create_terminal("/work", f"task-{index}")

    terminals = await asyncio.gather(*(claim(index) for index in range(10)))

    assert len({terminal.id for terminal in terminals}) == 10
    assert all(terminal.busy for terminal in terminals)
    assert registry.next_id == 11


def test_free_terminals_are_reused_in_creation_order() -> None:
    registry = _registry()
    first = registry.get_or_create_terminal("/a", "task-1")
    second = registry.get_or_create_terminal("/b", "task-2")
    third = registry.get_or_create_terminal("/c", "task-3")
    second.busy = False
    third.busy = False

    reused = registry.get_or_create_terminal("/d", "task-4")

    assert reused is second
    assert reused.busy is True
    assert reused.cwd == "/d"
    assert reused.requester_id == "task-4"
    assert first.busy is True
    assert third.busy is False


def test_terminal_ids_are_never_reused() -> None:
    registry = _registry()
    registry.get_or_create_terminal("/a", "task-1")
    registry.get_or_create_terminal("/a", "task-1")
    registry.remove_terminal(2)

    created = registry.get_or_create_terminal("/a", "task-1")

    assert created.id == 3
    assert list(registry.terminals) == [1, 3]


def test_initialize_twice_is_a_programmer_error() -> None:
    host = InProcessHost()
    registry = _registry(host=host)
    registry.initialize()

    with pytest.raises(DoubleInitializationError) as exc:
        registry.initialize()

    assert exc.value.code == ExitCode.STATE_ERROR
    assert host.subscriber_count == 1

    registry.cleanup()
    assert host.subscriber_count == 0
    registry.initialize()
    assert registry.initialized is True


@pytest.mark.asyncio
async def test_host_close_aborts_running_process_and_forgets_terminal() -> None:
    host = InProcessHost()
    fake = FakeProcess(hold_open=True)
    registry = _registry(fake, host=host)
    registry.initialize()
    terminal = registry.get_or_create_terminal("/work", "task-1")
    process = await terminal.run_command("sleep 30")

    host.close_terminal(terminal.id)
    await process.wait()

    assert process.aborted is True
    assert registry.get_terminal(terminal.id) is None
    assert fake.signals


@pytest.mark.asyncio
async def test_reclaim_keeps_terminals_with_unread_output() -> None:
    registry = _registry(FakeProcess(chunks=[b"unread\n"]))
    drained = registry.get_or_create_terminal("/a", "task-1")
    with_output = registry.get_or_create_terminal("/b", "task-1")
    busy = registry.get_or_create_terminal("/c", "task-1")
    drained.busy = False

    process = await with_output.run_command("echo unread", listen=False)
    await process.wait()

    assert registry.reclaim_closed_terminals() == [drained.id]
    assert list(registry.terminals) == [with_output.id, busy.id]

    assert with_output.get_unretrieved_output() == "unread\n"
    assert registry.reclaim_closed_terminals() == [with_output.id]


def test_requester_filters_and_background_terminals() -> None:
    registry = _registry()
    mine = registry.get_or_create_terminal("/a", "task-1")
    other = registry.get_or_create_terminal("/b", "task-2")
    other.busy = False

    assert registry.get_terminals(busy=True, requester_id="task-1") == [mine]
    assert registry.get_terminals(busy=False) == [other]
    assert registry.get_background_terminals() == []

    registry.release_terminals_for_requester("task-1")

    assert mine.requester_id is None
    assert registry.get_background_terminals(busy=True) == [mine]
    assert registry.get_background_terminals(busy=False) == []


@pytest.mark.asyncio
async def test_is_process_hot_tracks_active_output() -> None:
    gate = asyncio.Event()
    registry = _registry(FakeProcess(chunks=[b"Compiling crate\n", gate]))
    terminal = registry.get_or_create_terminal("/work", "task-1")

    assert registry.is_process_hot(terminal.id) is False
    process = await terminal.run_command("cargo build")
    assert registry.is_process_hot(terminal.id) is True

    gate.set()
    await process.wait()
    assert registry.is_process_hot(terminal.id) is False
    assert registry.is_process_hot(999) is False


def test_require_terminal_rejects_unknown_ids() -> None:
    registry = _registry()

    with pytest.raises(ShellBridgeError) as exc:
        registry.require_terminal(42)

    assert exc.value.code == ExitCode.VALIDATION_ERROR


def test_terminals_view_is_read_only() -> None:
    registry = _registry()
    registry.get_or_create_terminal("/a", "task-1")

    with pytest.raises(TypeError):
        registry.terminals[5] = registry.require_terminal(1)  # type: ignore[index]


@pytest.mark.asyncio
async def test_cleanup_aborts_running_processes() -> None:
    fake = FakeProcess(hold_open=True)
    registry = _registry(fake)
    registry.initialize()
    terminal = registry.get_or_create_terminal("/work", "task-1")
    process = await terminal.run_command("sleep 30")

    registry.cleanup()
    await process.wait()

    assert process.aborted is True
    assert registry.terminals == {}
