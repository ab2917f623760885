import os
import sys
import psutil
import logging
from typing import List, Optional

from selfwatch.errors import SpawnError
from selfwatch.supervisor.spawner import get_self_command
from selfwatch.supervisor.process_table import ProcessTable, default_table, kill_signal, program_basename

log = logging.getLogger(__name__)


def current_program_basename() -> str:
    """Returns the program basename of the current process, as `program_basename` sees it."""
    try:
        return program_basename(get_self_command())
    except SpawnError:
        return os.path.basename(sys.executable)


def kill_duplicates(
    program: str,
    exception_pid: int,
    table: Optional[ProcessTable] = None,
    own_pid: Optional[int] = None
) -> List[int]:
    """
    Force-kills every other running instance of this program.

    Stale supervisors and workers left behind by earlier runs are matched by
    program basename. The current process and `exception_pid` (the supervisor
    that launched this process, if any) are always spared. This is best-effort:
    candidates that vanish or cannot be signalled are skipped.

    :param program: The program basename to match, usually `current_program_basename()`.
    :param exception_pid: A PID that must never be killed (-1 for none).
    :param table: The process table to scan. Defaults to the psutil backend.
    :param own_pid: The current PID. Defaults to `os.getpid()`.
    :return: The PIDs a kill signal was delivered to.
    """
    table = table or default_table
    own_pid = os.getpid() if own_pid is None else own_pid
    sig = kill_signal()
    killed: List[int] = []

    try:
        entries = list(table.entries())
    except (psutil.Error, OSError) as e:
        log.warning(f"Could not enumerate processes, skipping duplicate cleanup: {e}")
        return killed

    for entry in entries:
        if entry.pid in (own_pid, exception_pid) or entry.program != program:
            continue
        try:
            table.send_signal(entry.pid, sig)
            killed.append(entry.pid)
            log.info(f"Killed stale instance of '{program}' (PID {entry.pid}).")
        except (psutil.Error, OSError) as e:
            log.debug(f"Could not kill stale instance PID {entry.pid}: {e}")

    return killed
