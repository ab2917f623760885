import time
import queue
import signal
import psutil
import logging
import threading
import subprocess
import setproctitle
from enum import Enum
from typing import Any, Dict, Optional

from selfwatch.config import UNCATCHABLE_SIGNALS, WatchdogConfig
from selfwatch.supervisor.spawner import Spawner, WorkerHandle
from selfwatch.supervisor.reaper import current_program_basename, kill_duplicates
from selfwatch.supervisor.process_table import NO_PID, ProcessTable, default_table, is_running

log = logging.getLogger(__name__)


class State(Enum):
    WAITING = "waiting"
    CHECKING = "checking"
    SPAWNING = "spawning"
    SIGNALING = "signaling"
    EXITED = "exited"


class Watchdog:
    """
    Keeps exactly one worker process alive until a termination signal arrives.

    The loop wakes on two sources only: the periodic check tick and a subscribed
    termination signal. On a tick a dead worker is replaced; on a signal the
    worker receives the first configured signal, the loop waits for it to exit
    and then returns for good.
    """

    def __init__(
        self,
        config: WatchdogConfig,
        spawner: Spawner,
        table: Optional[ProcessTable] = None,
        exception_pid: int = NO_PID,
        program: Optional[str] = None
    ) -> None:
        """
        :param config: The immutable supervisor configuration.
        :param spawner: Launches worker processes.
        :param table: The process table used for liveness checks and duplicate cleanup.
        :param exception_pid: PID spared by the duplicate cleanup (the supervisor that launched us).
        :param program: Program basename for the duplicate cleanup. Defaults to this program.
        """
        self.config = config
        self.spawner = spawner
        self.table = table or default_table
        self.exception_pid = exception_pid
        self.program = program

        self.worker: Optional[WorkerHandle] = None
        self.state = State.WAITING
        self.spawn_count = 0
        self.received_signal: Optional[int] = None

        # SimpleQueue.put is reentrant, so it is safe to call from a signal handler.
        self._signals: "queue.SimpleQueue[int]" = queue.SimpleQueue()
        self._previous_handlers: Dict[int, Any] = {}

    @property
    def worker_pid(self) -> int:
        return self.worker.pid if self.worker is not None else NO_PID

    #* --- Signal Subscription ---
    def _handle_signal(self, signum, frame) -> None:
        self._signals.put(signum)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            log.warning("Supervisor is not running in the main thread; termination signals are not subscribed.")
            return

        for sig in self.config.signals:
            if sig in UNCATCHABLE_SIGNALS:
                log.warning(f"{sig.name} cannot be caught and is ignored as a termination trigger.")
                continue
            try:
                self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
            except (OSError, ValueError) as e:
                log.warning(f"Could not subscribe to {sig.name}: {e}")

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def stop(self, signum: Optional[int] = None) -> None:
        """
        Requests shutdown as if a termination signal had arrived.
        Safe to call from other threads and from signal handlers.
        """
        self._signals.put(self.config.signals[0] if signum is None else signum)

    #* --- Loop Phases ---
    def _spawn(self) -> None:
        self.state = State.SPAWNING
        self.worker = self.spawner.spawn()
        self.spawn_count += 1

    def _check(self) -> None:
        """Replaces the worker if it is no longer running."""
        self.state = State.CHECKING
        if is_running(self.worker_pid, self.table):
            return

        if self.worker is not None:
            log.warning(f"Worker (PID: {self.worker.pid}) is not running. Respawning...")
            self._reap(self.worker)
        self._spawn()

    def _reap(self, worker: WorkerHandle) -> None:
        """Collects the exit status of a dead worker so it does not linger as a zombie."""
        if worker.process is None:
            return
        try:
            returncode = worker.process.poll()
            if returncode is not None:
                log.info(f"Worker (PID: {worker.pid}) exited with code {returncode}.")
        except OSError as e:
            log.debug(f"Could not collect exit status of PID {worker.pid}: {e}")

    def _forward_signal(self, signum: int) -> None:
        """Passes the termination request on to the worker and waits for it to exit."""
        self.state = State.SIGNALING
        self.received_signal = signum
        log.info(f"Received {_signal_name(signum)}. Stopping worker and supervisor.")

        if is_running(self.worker_pid, self.table):
            forward = self.config.signals[0]
            try:
                self.table.send_signal(self.worker.pid, forward)
            except (psutil.Error, OSError) as e:
                log.debug(f"Could not send {_signal_name(forward)} to worker PID {self.worker.pid}: {e}")
            else:
                log.info(f"Sent {_signal_name(forward)} to worker (PID: {self.worker.pid}). Waiting for it to exit...")
                self._wait_for_worker()

        self.state = State.EXITED

    def _wait_for_worker(self) -> None:
        worker = self.worker
        try:
            if worker.process is not None:
                worker.process.wait()
            else:
                psutil.Process(worker.pid).wait()
        except (psutil.Error, OSError, subprocess.SubprocessError) as e:
            log.debug(f"Waiting for worker PID {worker.pid} failed: {e}")
        else:
            log.info(f"Worker (PID: {worker.pid}) has exited.")

    #* --- Main Loop ---
    def run(self) -> bool:
        """
        Runs the supervision loop until a termination signal arrives.

        :return: Always False: this invocation is the supervisor and must not
            continue with the application's own logic.
        :raises SpawnError: If a worker could not be started. No graceful footer is printed.
        """
        interval = self.config.check_interval
        if self.config.process_title:
            setproctitle.setproctitle(self.config.process_title)
        if self.config.header:
            print(self.config.header)

        self._install_signal_handlers()
        try:
            if self.config.kill_duplicates:
                killed = kill_duplicates(self.program or current_program_basename(), self.exception_pid, self.table)
                if killed:
                    log.info(f"Killed {len(killed)} stale instance(s) before starting the worker.")
            self._spawn()

            next_tick = time.monotonic() + interval
            while self.state is not State.EXITED:
                self.state = State.WAITING
                try:
                    signum = self._signals.get(timeout=max(0.0, next_tick - time.monotonic()))
                except queue.Empty:
                    next_tick += interval
                    now = time.monotonic()
                    if next_tick <= now:
                        # Missed ticks are dropped, not replayed.
                        next_tick = now + interval
                    self._check()
                else:
                    self._forward_signal(signum)
        finally:
            self._restore_signal_handlers()

        log.info(f"Supervisor exiting after {self.spawn_count} worker launch(es).")
        if self.config.footer:
            print(self.config.footer)
        return False


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
