import argparse
import logging
from typing import Optional, Sequence

from selfwatch.config import WatchdogConfig, load_config
from selfwatch.supervisor import Watchdog
from selfwatch.supervisor.spawner import Spawner
from selfwatch.supervisor.process_table import ProcessTable
from selfwatch.supervisor.arguments import RoutedArguments, route_arguments

log = logging.getLogger(__name__)


def parse(
    parser: Optional[argparse.ArgumentParser] = None,
    argv: Optional[Sequence[str]] = None,
    config: Optional[WatchdogConfig] = None,
    table: Optional[ProcessTable] = None
) -> RoutedArguments:
    """
    Decides the role of this invocation and, for the supervisor, runs it to completion.

    Call this at the very start of the program. In the worker invocation it
    returns immediately and the application should carry on. In the supervisor
    invocation it blocks until a termination signal has been handled, and the
    application must then exit without running its own logic::

        args = selfwatch.parse(parser)
        if not args.is_worker:
            sys.exit(0)
        run_app(args.namespace)

    :param parser: The application's argument parser.
    :param argv: Arguments to parse. Defaults to `sys.argv[1:]`.
    :param config: Supervisor configuration. Defaults to `load_config()`.
    :param table: Process table override, mostly for tests.
    :return: The routed arguments.
    :raises SpawnError: If the supervisor could not start a worker.
    """
    routed = route_arguments(parser, argv)
    if routed.is_worker:
        log.debug(f"Running as worker of supervisor PID {routed.watchdog_pid}.")
        return routed

    config = config or load_config()
    spawner = Spawner(routed.worker_argv())
    Watchdog(config, spawner, table=table, exception_pid=routed.watchdog_pid).run()
    return routed
