"""
Storage Layer.

This package handles all data persistence: the configuration file and the
resumable queue state.
"""

from .config_manager import ConfigManager
from .state_store import SchedulerSnapshot, StateStore

__all__ = ["ConfigManager", "SchedulerSnapshot", "StateStore"]
