# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the selfwatch test suite.

This module provides deterministic stand-ins for the operating system:
- FakeProcessTable: an in-memory process table that records signals
- FakeSpawner: hands out fake worker handles instead of launching processes
- make_config: builds a WatchdogConfig with short intervals
"""

from __future__ import annotations

import signal
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from selfwatch.config import WatchdogConfig
from selfwatch.errors import SpawnError
from selfwatch.supervisor.process_table import ProcessEntry, ProcessTable
from selfwatch.supervisor.spawner import WorkerHandle


# =============================================================================
# Fake OS
# =============================================================================


class FakeProcess:
    """Mimics the parts of subprocess.Popen the supervisor uses."""

    def __init__(self, pid: int, table: "FakeProcessTable") -> None:
        self.pid = pid
        self.table = table
        self.wait_calls = 0
        self.poll_calls = 0

    def wait(self, timeout: Optional[float] = None) -> int:
        self.wait_calls += 1
        self.table.alive.discard(self.pid)
        return 0

    def poll(self) -> Optional[int]:
        self.poll_calls += 1
        return None if self.pid in self.table.alive else 0


class FakeProcessTable(ProcessTable):
    """In-memory process table.

    Attributes:
        alive: PIDs that currently exist.
        programs: Program basename per PID, used by `entries()`.
        signals: Every (pid, signal) delivered, in order.
        exit_on_signal: If True, a signalled process disappears immediately.
        broken: PIDs whose lookup raises OSError.
    """

    def __init__(self) -> None:
        self.alive: set = set()
        self.programs: Dict[int, str] = {}
        self.signals: List[Tuple[int, int]] = []
        self.exit_on_signal = True
        self.broken: set = set()
        self.lookups: List[int] = []

    def add(self, pid: int, program: str = "app.py") -> None:
        self.alive.add(pid)
        self.programs[pid] = program

    def exists(self, pid: int) -> bool:
        self.lookups.append(pid)
        if pid in self.broken:
            raise OSError("lookup failed")
        return pid in self.alive

    def entries(self):
        for pid in sorted(self.alive):
            yield ProcessEntry(pid, self.programs.get(pid, ""))

    def send_signal(self, pid: int, sig: int) -> None:
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        self.signals.append((pid, sig))
        if self.exit_on_signal:
            self.alive.discard(pid)


class FakeSpawner:
    """Hands out sequential fake workers and registers them in the table.

    Args:
        table: The fake process table the workers live in.
        stays_alive: If False, workers are dead as soon as they are spawned.
        fail_after: Raise SpawnError once this many workers were spawned.
        on_spawn: Callback invoked with the spawn count after every spawn.
    """

    def __init__(
        self,
        table: FakeProcessTable,
        stays_alive: bool = True,
        fail_after: Optional[int] = None,
        on_spawn: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.table = table
        self.stays_alive = stays_alive
        self.fail_after = fail_after
        self.on_spawn = on_spawn
        self.handles: List[WorkerHandle] = []
        self.next_pid = 1000

    def spawn(self) -> WorkerHandle:
        if self.fail_after is not None and len(self.handles) >= self.fail_after:
            raise SpawnError("cannot spawn")
        self.next_pid += 1
        pid = self.next_pid
        if self.stays_alive:
            self.table.add(pid)
        handle = WorkerHandle(pid, FakeProcess(pid, self.table))
        self.handles.append(handle)
        if self.on_spawn:
            self.on_spawn(len(self.handles))
        return handle


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def table() -> FakeProcessTable:
    """An empty fake process table."""
    return FakeProcessTable()


@pytest.fixture
def make_config() -> Callable[..., WatchdogConfig]:
    """Factory for configs with a short check interval."""

    def _make(**overrides) -> WatchdogConfig:
        values = dict(
            check_interval=0.05,
            header="",
            footer="",
            kill_duplicates=False,
            signals=(signal.SIGINT, signal.SIGTERM),
            process_title="",
        )
        values.update(overrides)
        return WatchdogConfig(**values)

    return _make


@pytest.fixture(autouse=True)
def _restore_signal_handlers():
    """Guards against a test leaking a signal handler into the rest of the run."""
    watched = [signal.SIGINT, signal.SIGTERM] + ([signal.SIGHUP] if hasattr(signal, "SIGHUP") else [])
    saved = {sig: signal.getsignal(sig) for sig in watched}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)
