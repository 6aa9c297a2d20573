"""
Sub-task extraction from task content.

A sub-task is any line whose stripped text starts with a bullet marker
("- " or "* "). The marker is dropped and the rest of the line becomes the
sub-task content. Numbered lists are not sub-tasks.
"""

from typing import List

from priority_queue.models import SubTask, TaskState


BULLET_MARKERS = ("- ", "* ")


def subtask_id(task_id: str, index: int) -> str:
    """Build the ID of the index-th sub-task of a task."""
    return f"{task_id}_sub_{index}"


def parse_subtasks(task_id: str, content: str) -> List[SubTask]:
    """
    Extract sub-tasks from task content, in encounter order.

    Args:
        task_id: ID of the owning task (used to derive sub-task IDs)
        content: Task content

    Returns:
        List of pending sub-tasks (empty if the content has no bullet lines)
    """
    sub_tasks: List[SubTask] = []

    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped.startswith(BULLET_MARKERS):
            continue

        sub_tasks.append(SubTask(
            id=subtask_id(task_id, len(sub_tasks)),
            content=stripped[2:],
            state=TaskState.PENDING,
        ))

    return sub_tasks
