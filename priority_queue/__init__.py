"""
Priority Task Queue - persistent, priority-ordered task queue.

Accepts tasks from several input channels (CLI, HTTP, inbox directory),
processes them one at a time in priority order and keeps its state in
JSON files so queued and in-flight work survives restarts.

State directory (default ~/.task-queue):
- config.json    - settings
- queue.json     - ordered tasks
- state.json     - run status and counters
- progress.json  - sub-task progress of the current task
- inbox/         - drop files here to enqueue them
"""

__version__ = "1.0.0"

from priority_queue.models import (
    Priority,
    TaskState,
    RunStatus,
    SubTask,
    Task,
    QueueRunState,
    Progress,
    QueueSettings,
    QueueConfig,
)

from priority_queue.exceptions import (
    QueueError,
    InvalidInput,
    PersistenceError,
    CorruptState,
    QueueLocked,
)
from priority_queue.config import ConfigManager, DEFAULT_CONFIG_FILE
from priority_queue.store import QueueStore
from priority_queue.engine import TaskQueue
from priority_queue.service import QueueService
from priority_queue.subtasks import parse_subtasks

__all__ = [
    # Models
    "Priority",
    "TaskState",
    "RunStatus",
    "SubTask",
    "Task",
    "QueueRunState",
    "Progress",
    "QueueSettings",
    "QueueConfig",
    # Errors
    "QueueError",
    "InvalidInput",
    "PersistenceError",
    "CorruptState",
    "QueueLocked",
    # Config
    "ConfigManager",
    "DEFAULT_CONFIG_FILE",
    # Components
    "QueueStore",
    "TaskQueue",
    "QueueService",
    "parse_subtasks",
]
