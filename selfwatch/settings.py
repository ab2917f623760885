"""
This module contains the default configuration settings for selfwatch.
Every modifiable value can be overridden from the environment (or a .env file)
as `SELFWATCH_<NAME>`, from the JSON overrides file, or by the embedding
application through `load_config`. The environment is read by `load_config`,
not at import time, so importing selfwatch leaves `os.environ` untouched.
"""

import signal
import pathlib

#* --- Reserved Flags ---
# Flags owned by selfwatch; never forwarded to the worker.
WORKER_FLAG = "--isMain"
WATCHDOG_PID_FLAG = "--watchdogPID"

#* --- Environment ---
ENV_PREFIX = "SELFWATCH_"

#* --- Supervisor Settings ---
CHECK_INTERVAL = 5.0  # seconds
HEADER = ""  # Printed once when the supervisor starts
FOOTER = ""  # Printed once before the supervisor exits
KILL_DUPLICATES = False

# Termination triggers. The first one is also the signal forwarded to the worker.
# SIGKILL cannot be caught, so it is not part of the defaults. SIGHUP is included
# where it exists: the worker runs in its own session and would not get the
# terminal hangup on its own.
SIGNALS = "SIGINT,SIGTERM,SIGHUP" if hasattr(signal, "SIGHUP") else "SIGINT,SIGTERM"

# Optional title for the supervisor process (e.g. "MyApp - Supervisor").
PROCESS_TITLE = ""

#* --- Overrides ---
OVERRIDES_JSON_PATH = pathlib.Path("selfwatch.overrides.json")  # SELFWATCH_OVERRIDES_PATH
MODIFIABLE_SETTINGS = {
    "CHECK_INTERVAL",
    "HEADER",
    "FOOTER",
    "KILL_DUPLICATES",
    "SIGNALS",
    "PROCESS_TITLE",
}
