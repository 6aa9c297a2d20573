"""Test fixtures for priority-queue tests."""

import json

import pytest

from priority_queue.models import (
    Priority, Task, TaskState, SubTask, QueueSettings
)
from priority_queue.store import QueueStore
from priority_queue.engine import TaskQueue


@pytest.fixture
def state_dir(tmp_path):
    """State directory for queue resources."""
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture
def store(state_dir):
    """Store on the temporary state directory."""
    return QueueStore(state_dir)


@pytest.fixture
def settings():
    """Default settings with no retry delay."""
    return QueueSettings(retry_delay=0)


@pytest.fixture
def manual_settings():
    """Settings without automatic processing."""
    return QueueSettings(retry_delay=0, auto_process=False)


@pytest.fixture
def engine(store, settings):
    """Engine with automatic processing."""
    return TaskQueue(store, settings)


@pytest.fixture
def manual_engine(store, manual_settings):
    """Engine where dequeue has to be called explicitly."""
    return TaskQueue(store, manual_settings)


@pytest.fixture
def sample_task():
    """Create a sample Task with two sub-tasks."""
    return Task(
        id="task_1738317600000_0a1b2c3d",
        content="Release checklist\n- build\n- publish",
        platform="discord",
        user_id="user-1",
        session_id="session-1",
        metadata={"channel": "ops"},
        priority=Priority.HIGH,
        sub_tasks=[
            SubTask(id="task_1738317600000_0a1b2c3d_sub_0", content="build"),
            SubTask(id="task_1738317600000_0a1b2c3d_sub_1", content="publish"),
        ],
        created_at="2025-01-31T10:00:00",
    )


def make_task(task_id: str, priority: Priority = Priority.NORMAL,
              state: TaskState = TaskState.PENDING, content: str = "work") -> Task:
    """Build a task with fixed fields."""
    return Task(id=task_id, content=content, priority=priority, state=state)


@pytest.fixture
def legacy_queue_file(state_dir):
    """A queue.json in the legacy layout."""
    queue_file = state_dir / "queue.json"
    queue_file.write_text(json.dumps({
        "messages": [
            {
                "id": "task_1738317600000_aaaaaaaa",
                "content": "Deploy",
                "platform": "telegram",
                "userId": "42",
                "priority": 1,
                "metadata": {},
                "sessionId": None,
                "state": "pending",
                "createdAt": "2025-01-31T10:00:00.000Z",
                "startedAt": None,
                "completedAt": None,
                "subTasks": [],
                "retryCount": 0
            }
        ],
        "updatedAt": "2025-01-31T10:00:00.000Z"
    }))
    return queue_file
