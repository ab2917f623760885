import sys
import os
import logging

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class RoleFormatter(logging.Formatter):
    """
    Prefixes every record with the PID of the emitting process.

    Supervisor and worker share the same console, so without the PID their
    lines cannot be told apart.
    """

    def format(self, record):
        formatted_message = super().format(record)
        return f"[{os.getpid()}] {formatted_message}"


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger with a single console handler.
    Any previously configured handlers are cleared to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(console_level)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(RoleFormatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)
