"""Exceptions raised by selfwatch."""


class SelfwatchError(Exception):
    """Base class for all selfwatch errors."""


class SpawnError(SelfwatchError):
    """The supervisor could not launch its worker process. Unrecoverable."""


class ConfigError(SelfwatchError):
    """A configuration value is missing or invalid."""
