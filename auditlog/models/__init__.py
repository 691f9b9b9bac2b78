"""ORM models package."""
from .base import Base
from .buffered_event import BufferedEvent
from .meta import Meta
from .occurrence import Occurrence
from .option import Option
from .scheduler_lock import SchedulerLock

__all__ = [
    "Base",
    "BufferedEvent",
    "Meta",
    "Occurrence",
    "Option",
    "SchedulerLock",
]
