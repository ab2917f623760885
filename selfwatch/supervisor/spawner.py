import os
import sys
import logging
import subprocess
from collections import namedtuple
from typing import Any, Dict, List, Optional, Sequence

from selfwatch import settings
from selfwatch.errors import SpawnError

log = logging.getLogger(__name__)

WorkerHandle = namedtuple('WorkerHandle', ['pid', 'process'])


#* --- Process Creation ---
def get_self_command() -> List[str]:
    """
    Returns the command that relaunches the currently running program.

    - Frozen executables relaunch themselves.
    - `python -m pkg` relaunches as `python -m pkg`.
    - Scripts (`python app.py`) relaunch through the current interpreter.
    - Anything else executable (console scripts, binaries) relaunches directly.

    :raises SpawnError: If there is no program to relaunch (interactive sessions, `python -c`).
    """
    if getattr(sys, "frozen", False):
        return [sys.executable]

    main_spec = getattr(sys.modules.get("__main__"), "__spec__", None)
    if main_spec is not None and main_spec.name:
        module = main_spec.name
        if module.endswith(".__main__"):
            module = module[: -len(".__main__")]
        return [sys.executable, "-m", module]

    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0 or argv0 == "-c":
        raise SpawnError("Cannot determine the program to relaunch (no script path in sys.argv[0]).")

    program = os.path.abspath(argv0)
    if program.endswith(".py") or not os.access(program, os.X_OK):
        return [sys.executable, program]
    return [program]


def _get_popen_kwargs() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments for subprocess.Popen.

    On POSIX the worker gets its own session, so a Ctrl+C on the terminal only
    reaches the supervisor, which then forwards exactly one signal. The same
    holds for the terminal hangup: SIGHUP is in the default signal set so the
    supervisor can pass it on instead of leaving the worker orphaned.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class Spawner:
    """
    Launches worker invocations of the current program.

    The worker command is `<program> --isMain --watchdogPID <supervisor pid>`
    followed by the forwarded arguments. Standard streams are inherited, so the
    worker writes to the same console as the supervisor.
    """

    def __init__(self, forwarded: Sequence[str], command: Optional[Sequence[str]] = None, watchdog_pid: Optional[int] = None) -> None:
        """
        :param forwarded: Application arguments passed verbatim to every worker.
        :param command: The command that starts the program. Defaults to `get_self_command()`.
        :param watchdog_pid: The supervisor PID announced to workers. Defaults to `os.getpid()`.
        """
        self.forwarded = tuple(forwarded)
        self.command = list(command) if command is not None else None
        self.watchdog_pid = os.getpid() if watchdog_pid is None else watchdog_pid

    def build_args(self) -> List[str]:
        """Returns the full worker command line."""
        command = self.command if self.command is not None else get_self_command()
        return [
            *command,
            settings.WORKER_FLAG,
            settings.WATCHDOG_PID_FLAG, str(self.watchdog_pid),
            *self.forwarded,
        ]

    def spawn(self) -> WorkerHandle:
        """
        Starts one worker process. Does not retry.

        :return: The handle of the new worker.
        :raises SpawnError: If the worker could not be started.
        """
        try:
            args = self.build_args()
            process = subprocess.Popen(args, **_get_popen_kwargs())
        except SpawnError as e:
            log.critical(f"Failed to start worker process: {e}")
            raise
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            log.critical(f"Failed to start worker process: {e}", exc_info=True)
            raise SpawnError(f"Failed to start worker process: {e}") from e

        log.info(f"Worker started with PID: {process.pid}")
        return WorkerHandle(process.pid, process)
