"""
selfwatch - run a program under a watchdog copy of itself.

The first invocation becomes the supervisor: it relaunches the same program as
a worker, restarts it whenever it dies and forwards termination signals to it.
"""

from .entry import parse
from .config import WatchdogConfig, load_config
from .errors import ConfigError, SelfwatchError, SpawnError
from .supervisor import State, Watchdog
from .supervisor.spawner import Spawner, WorkerHandle
from .supervisor.arguments import Role, RoutedArguments, route_arguments
from .supervisor.process_table import ProcessTable, PsutilProcessTable, is_running

__version__ = "0.1.0"

__all__ = [
    "parse",
    "WatchdogConfig",
    "load_config",
    "ConfigError",
    "SelfwatchError",
    "SpawnError",
    "State",
    "Watchdog",
    "Spawner",
    "WorkerHandle",
    "Role",
    "RoutedArguments",
    "route_arguments",
    "ProcessTable",
    "PsutilProcessTable",
    "is_running",
]
