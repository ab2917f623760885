import os
import json
import signal
import logging
from pathlib import Path
from collections import namedtuple
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from dotenv import find_dotenv, load_dotenv

import selfwatch.settings as default_settings
from selfwatch.errors import ConfigError

log = logging.getLogger(__name__)

# Signals a process can never catch; subscribing to them is a no-op.
UNCATCHABLE_SIGNALS = frozenset(
    getattr(signal, name) for name in ("SIGKILL", "SIGSTOP") if hasattr(signal, name)
)

WatchdogConfig = namedtuple(
    'WatchdogConfig',
    ['check_interval', 'header', 'footer', 'kill_duplicates', 'signals', 'process_title']
)
WatchdogConfig.__doc__ = """
Immutable supervisor configuration.

:param check_interval: Seconds between two worker liveness checks.
:param header: Text printed once when the supervisor starts (empty to disable).
:param footer: Text printed once before the supervisor exits (empty to disable).
:param kill_duplicates: Kill other instances of this program before the first spawn.
:param signals: Ordered tuple of termination signals. The first is forwarded to the worker.
:param process_title: Process title for the supervisor (empty to leave untouched).
"""

# Maps setting names (settings.py / overrides file) to WatchdogConfig fields.
_SETTING_TO_FIELD = {
    "CHECK_INTERVAL": "check_interval",
    "HEADER": "header",
    "FOOTER": "footer",
    "KILL_DUPLICATES": "kill_duplicates",
    "SIGNALS": "signals",
    "PROCESS_TITLE": "process_title",
}

SignalSpec = Union[str, int, signal.Signals]


def parse_signal(value: SignalSpec) -> signal.Signals:
    """
    Converts a signal name ("SIGINT", "int") or number into a `signal.Signals` member.

    :raises ConfigError: If the signal is unknown on this platform.
    """
    if isinstance(value, signal.Signals):
        return value
    try:
        if isinstance(value, int):
            return signal.Signals(value)
        name = str(value).strip().upper()
        if not name.startswith("SIG"):
            name = "SIG" + name
        return signal.Signals[name]
    except (KeyError, ValueError):
        raise ConfigError(f"Unknown signal '{value}'.") from None


def parse_signals(value: Union[str, Iterable[SignalSpec]]) -> Tuple[signal.Signals, ...]:
    """Parses a comma separated string or an iterable into an ordered, de-duplicated signal tuple."""
    items = value.split(",") if isinstance(value, str) else list(value)
    signals = []
    for item in items:
        if isinstance(item, str) and not item.strip():
            continue
        sig = parse_signal(item)
        if sig not in signals:
            signals.append(sig)
    if not signals:
        raise ConfigError("At least one termination signal must be configured.")
    return tuple(signals)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ('true', '1', 't', 'yes', 'y')
    return bool(value)


def _load_environment() -> Dict[str, Any]:
    """
    Loads the application's .env file and reads the `SELFWATCH_<NAME>` variables.

    The .env file is searched from the current working directory upwards, so it
    belongs to the program embedding selfwatch. Variables already present in the
    environment take precedence over the file.
    """
    load_dotenv(find_dotenv(usecwd=True))
    applied = {}
    for setting, field in _SETTING_TO_FIELD.items():
        value = os.getenv(default_settings.ENV_PREFIX + setting)
        if value is not None:
            applied[field] = value
            log.debug(f"Environment setting: {setting} = {value}")
    return applied


def _load_overrides_file(path: Path) -> Dict[str, Any]:
    """
    Loads the whitelisted settings from a JSON overrides file.

    Keys outside `MODIFIABLE_SETTINGS` are ignored with a warning; a missing file is
    not an error, a malformed one is logged and ignored.
    """
    if not path.exists():
        return {}

    try:
        with path.open('r') as f:
            overrides = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        log.error(f"Failed to load or parse overrides file '{path}': {e}")
        return {}

    if not isinstance(overrides, dict):
        log.error(f"Overrides file '{path}' must contain a JSON object. Ignoring.")
        return {}

    log.info(f"Loading configuration overrides from {path}")
    applied = {}
    for key, value in overrides.items():
        if key not in default_settings.MODIFIABLE_SETTINGS:
            log.warning(f"Override setting '{key}' is not modifiable. Ignoring.")
            continue
        applied[_SETTING_TO_FIELD[key]] = value
        log.debug(f"Overridden setting: {key} = {value}")
    return applied


def load_config(overrides_path: Optional[Path] = None, **overrides: Any) -> WatchdogConfig:
    """
    Builds the supervisor configuration.

    Precedence, lowest first:
    1. Defaults from `settings.py`.
    2. `SELFWATCH_<NAME>` environment variables, including those from a .env file.
    3. The JSON overrides file, for keys listed in `MODIFIABLE_SETTINGS`.
    4. Keyword arguments given by the embedding application.

    :param overrides_path: JSON overrides file. Defaults to `$SELFWATCH_OVERRIDES_PATH`,
        then `settings.OVERRIDES_JSON_PATH`.
    :param overrides: Explicit values for `WatchdogConfig` fields.
    :return: The validated, immutable configuration.
    :raises ConfigError: On unknown fields or invalid values.
    """
    unknown = set(overrides) - set(WatchdogConfig._fields)
    if unknown:
        raise ConfigError(f"Unknown configuration field(s): {', '.join(sorted(unknown))}")

    values: Dict[str, Any] = {
        field: getattr(default_settings, setting) for setting, field in _SETTING_TO_FIELD.items()
    }
    values.update(_load_environment())
    if overrides_path is None:
        overrides_path = os.getenv(default_settings.ENV_PREFIX + "OVERRIDES_PATH") or default_settings.OVERRIDES_JSON_PATH
    values.update(_load_overrides_file(Path(overrides_path)))
    values.update(overrides)

    try:
        check_interval = float(values["check_interval"])
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid check interval '{values['check_interval']}'.") from None
    if check_interval <= 0:
        raise ConfigError(f"Check interval must be positive, got {check_interval}.")

    return WatchdogConfig(
        check_interval=check_interval,
        header=str(values["header"] or ""),
        footer=str(values["footer"] or ""),
        kill_duplicates=_coerce_bool(values["kill_duplicates"]),
        signals=parse_signals(values["signals"]),
        process_title=str(values["process_title"] or ""),
    )
