"""
The Supervisor package.
Keeps a single worker invocation of the current program alive.

This package contains the Watchdog loop and its helper modules, which together
handle argument routing, spawning, liveness checks and duplicate cleanup.
"""
from .supervisor import State, Watchdog

__all__ = ['State', 'Watchdog']
