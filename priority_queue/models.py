"""
Data models for the priority task queue.

Defines Pydantic models for tasks, run state, progress and configuration.
Models use snake_case attributes in Python and camelCase keys on disk.
"""

from enum import Enum, IntEnum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from priority_queue.exceptions import InvalidInput


DEFAULT_PLATFORMS = ["discord", "telegram", "lark", "wechat", "signal", "whatsapp"]


class Priority(IntEnum):
    """Task priority. Lower value means more urgent."""
    CRITICAL = 0
    HIGH = 1
    NORMAL = 2
    LOW = 3

    @classmethod
    def parse(cls, value: Union["Priority", int, str, None]) -> "Priority":
        """
        Convert user input into a Priority.

        Accepts Priority members, integers, numeric strings and
        case-insensitive names ("high", "CRITICAL").

        Raises:
            InvalidInput: If the value does not name a priority
        """
        if value is None:
            return cls.NORMAL
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidInput(f"Invalid priority: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidInput(f"Invalid priority: {value!r}") from None
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls.parse(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise InvalidInput(f"Invalid priority: {value!r}") from None
        raise InvalidInput(f"Invalid priority: {value!r}")


class TaskState(str, Enum):
    """Task lifecycle state."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"     # Reserved for sub-task gating, never set by the engine


class RunStatus(str, Enum):
    """Overall queue status."""
    IDLE = "idle"
    PROCESSING = "processing"
    PAUSED = "paused"
    ERROR = "error"


def utc_now() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _CamelModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubTask(_CamelModel):
    """A bullet line from the parent task's content, tracked for progress."""

    id: str
    content: str
    state: TaskState = TaskState.PENDING


class Task(_CamelModel):
    """
    A unit of work in the queue.

    Only ``state``, the sub-task states, ``retry_count`` and the
    transition timestamps/outcome fields change after creation.
    """

    id: str = Field(..., description="Unique task identifier (task_<millis>_<hex>)")
    content: str = Field(..., description="Free-text payload")

    # Provenance
    platform: str = Field(default="unknown", description="Input channel the task came from")
    user_id: Optional[str] = Field(default="unknown")
    session_id: Optional[str] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    priority: Priority = Field(default=Priority.NORMAL)
    state: TaskState = Field(default=TaskState.PENDING)
    sub_tasks: List[SubTask] = Field(default_factory=list)
    retry_count: int = Field(default=0, ge=0)

    # Timestamps
    created_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    # Outcome
    result: Optional[Any] = None
    error: Optional[Any] = None

    def get_subtask(self, subtask_id: str) -> Optional[SubTask]:
        """Get sub-task by ID."""
        for sub_task in self.sub_tasks:
            if sub_task.id == subtask_id:
                return sub_task
        return None

    def count_completed_subtasks(self) -> int:
        """Get count of completed sub-tasks."""
        return len([st for st in self.sub_tasks if st.state == TaskState.COMPLETED])


class Progress(_CamelModel):
    """Sub-task progress of a single task."""

    completed: int = 0
    total: int = 0


class QueueRunState(_CamelModel):
    """
    Process-wide run state.

    Persisted after every mutation so counters survive restarts.
    """

    status: RunStatus = RunStatus.IDLE
    last_processed_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("lastProcessedId", "lastProcessed", "last_processed_id"),
        serialization_alias="lastProcessedId",
    )
    total_processed: int = 0
    total_failed: int = 0
    session_id: Optional[str] = None
    started_at: str = Field(default_factory=utc_now)


class QueueSettings(BaseModel):
    """Engine and host settings."""

    # Retry settings
    max_retries: int = Field(default=3, ge=1, description="Failures before a task is marked failed")
    retry_delay: float = Field(default=5.0, ge=0, description="Seconds before a retried task is picked up again")

    # Processing
    persist_interval: float = Field(default=5.0, gt=0, description="Seconds between safety flushes")
    auto_process: bool = Field(default=True, description="Start processing automatically on enqueue")

    # Input channels
    platforms: List[str] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    inbox_enabled: bool = Field(default=True, description="Watch the inbox directory while serving")
    inbox_debounce_ms: int = Field(default=500, ge=0)

    # HTTP API
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3850, ge=1, le=65535)

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_keys(cls, data: Any) -> Any:
        """Accept legacy config files (camelCase keys, delays in milliseconds)."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        if "maxRetries" in data:
            data.setdefault("max_retries", data.pop("maxRetries"))
        if "autoProcess" in data:
            data.setdefault("auto_process", data.pop("autoProcess"))
        # Legacy delays are milliseconds
        if "retryDelay" in data:
            data.setdefault("retry_delay", data.pop("retryDelay") / 1000.0)
        if "persistInterval" in data:
            data.setdefault("persist_interval", data.pop("persistInterval") / 1000.0)
        return data


class QueueConfig(BaseModel):
    """
    Complete queue configuration.

    Persisted as config.json inside the state directory.
    """

    version: str = "1.0"
    settings: QueueSettings = Field(default_factory=QueueSettings)

    # Metadata
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def migrate_flat_config(cls, data: Any) -> Any:
        """Old config files kept the settings at the top level."""
        if isinstance(data, dict) and "settings" not in data:
            known = {"version", "created_at", "updated_at"}
            settings = {k: v for k, v in data.items() if k not in known}
            data = {k: v for k, v in data.items() if k in known}
            data["settings"] = settings
        return data
