import os
import psutil
import signal
import logging
from collections import namedtuple
from typing import Iterator, List, Optional

log = logging.getLogger(__name__)

NO_PID = -1

ProcessEntry = namedtuple('ProcessEntry', ['pid', 'program'])


#* --- Program Identification ---
# Interpreter options that consume the next token as their value.
_INTERPRETER_VALUE_OPTIONS = {"-W", "-X", "-Q", "--check-hash-based-pycs"}


def program_basename(cmdline: List[str], name: str = "") -> str:
    """
    Returns the basename of the program a process runs.

    For interpreted programs (``python app.py``, ``python -m app``) this is the
    script or module, not the interpreter, so that two Python programs are not
    mistaken for each other. ``python -c ...`` and bare interpreters are
    identified by the interpreter name.

    :param cmdline: The full command line of the process.
    :param name: Fallback name when the command line is empty (kernel threads, zombies).
    """
    if not cmdline:
        return name
    first = os.path.basename(cmdline[0])
    if not first.lower().startswith("python"):
        return first

    args = cmdline[1:]
    while args and args[0].startswith("-") and args[0] != "-":
        option = args[0]
        if option.startswith("-c"):
            return first
        if option == "-m":
            return args[1] if len(args) >= 2 else first
        if option.startswith("-m"):
            return option[2:]
        if option == "--":
            args = args[1:]
            break
        # -Wignore / -Xdev carry their value inline; -W ignore / -X dev take the next token.
        args = args[2:] if option in _INTERPRETER_VALUE_OPTIONS else args[1:]
    if args and args[0] != "-":
        return os.path.basename(args[0])
    return first


#* --- Process Table ---
class ProcessTable:
    """
    Read and signal access to the OS process table.

    The supervisor only talks to the OS through this interface, so tests can
    substitute a deterministic fake.
    """

    def exists(self, pid: int) -> bool:
        """Returns True if a live (non-zombie) process with this PID exists. May raise."""
        raise NotImplementedError

    def entries(self) -> Iterator[ProcessEntry]:
        """Yields one `ProcessEntry` per process in the table."""
        raise NotImplementedError

    def send_signal(self, pid: int, sig: int) -> None:
        """Sends a signal to a process. May raise."""
        raise NotImplementedError


class PsutilProcessTable(ProcessTable):
    """`ProcessTable` backed by psutil, which covers Linux, macOS and Windows."""

    def exists(self, pid: int) -> bool:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE

    def entries(self) -> Iterator[ProcessEntry]:
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            info = proc.info
            yield ProcessEntry(info["pid"], program_basename(info.get("cmdline") or [], info.get("name") or ""))

    def send_signal(self, pid: int, sig: int) -> None:
        psutil.Process(pid).send_signal(sig)


default_table = PsutilProcessTable()


#* --- Process Status ---
def is_running(pid: int, table: Optional[ProcessTable] = None) -> bool:
    """
    Reports whether a process with the given PID is currently running.

    Any lookup failure is treated as "not running"; the supervisor would rather
    respawn than keep tracking a dead worker.

    :param pid: The PID to look up. Negative values mean "no process".
    :param table: The process table to query. Defaults to the psutil backend.
    """
    if pid < 0:
        return False
    table = table or default_table
    try:
        return table.exists(pid)
    except (psutil.Error, OSError) as e:
        log.debug(f"Lookup of PID {pid} failed, treating it as not running: {e}")
        return False


def kill_signal() -> int:
    """The forced-termination signal for this platform."""
    return getattr(signal, "SIGKILL", signal.SIGTERM)
