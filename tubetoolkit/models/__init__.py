"""
Data Models Layer.

This package contains the core data structures used throughout the application:
the validated configuration, the job entity and the scheduler events.
"""

from .config import QueueConfig
from .events import EventBus, EventType, QueueEvent
from .job import Job, JobState, ProgressSample

__all__ = [
    "EventBus",
    "EventType",
    "Job",
    "JobState",
    "ProgressSample",
    "QueueConfig",
    "QueueEvent",
]
