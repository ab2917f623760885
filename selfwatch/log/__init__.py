"""
Logging module for selfwatch.
This module provides the console logging setup used by supervisor entry points.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
