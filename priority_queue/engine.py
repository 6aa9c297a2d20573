"""
Priority task queue engine.

Owns the ordered task list, the single processing slot and the run state.
Every mutation is written through the store before the call returns.

Queue order:
- Ascending priority value (CRITICAL first)
- Insertion order within the same priority
- Only pending tasks are picked for processing

The engine does no locking. Hosts that call it from several threads must
serialize access (see priority_queue.service).
"""

import logging
import uuid
import time
from typing import Any, Callable, Dict, List, Optional

from priority_queue.models import (
    Priority, Task, TaskState, RunStatus, Progress, QueueSettings, utc_now
)
from priority_queue.store import QueueStore
from priority_queue.subtasks import parse_subtasks
from priority_queue.exceptions import InvalidInput, PersistenceError


# Preview length of the current task's content in status output
CONTENT_PREVIEW_CHARS = 100

# Receives (delay_seconds, callback) and runs callback later
Scheduler = Callable[[float, Callable[[], Any]], None]

logger = logging.getLogger(__name__)


def generate_task_id() -> str:
    """Create a unique task ID (task_<epoch millis>_<8 hex chars>)."""
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class TaskQueue:
    """
    Persistent priority queue with a single processing slot.

    Task lifecycle:
        pending -> processing -> completed        (complete_task)
        pending -> processing -> pending          (fail_task, retries left)
        pending -> processing -> failed           (fail_task, retries exhausted)

    Completed and failed tasks leave the queue immediately.
    """

    def __init__(
        self,
        store: QueueStore,
        settings: Optional[QueueSettings] = None,
        scheduler: Optional[Scheduler] = None
    ):
        """
        Initialize engine and load persisted state.

        Args:
            store: Durable store for queue resources
            settings: Queue settings (defaults if None)
            scheduler: Runs delayed auto-advance callbacks. Without one,
                       auto-advance happens synchronously.
        """
        self.store = store
        self.settings = settings or QueueSettings()
        self.scheduler = scheduler

        self.queue: List[Task]
        self.queue, self.state, self.progress = store.load()
        self.current_task: Optional[Task] = None

        # Set when the last write failed, cleared by the next successful one
        self.dirty = False

        if self._recover():
            self.persist()

    # ============ Recovery ============

    def _recover(self) -> bool:
        """
        Rebuild in-memory invariants after loading.

        A task left in processing by a previous run becomes the current
        task again. It is not restarted; the caller has to complete or
        fail it.

        Returns:
            True if the loaded state had to be changed
        """
        changed = False

        ordered = sorted(self.queue, key=lambda t: t.priority)
        if [t.id for t in ordered] != [t.id for t in self.queue]:
            logger.warning("Loaded queue was out of priority order, re-sorted")
            self.queue = ordered
            changed = True

        for task in self.queue:
            if task.state != TaskState.PROCESSING:
                continue

            if self.current_task is None:
                self.current_task = task
                logger.warning(
                    f"Recovered in-flight task {task.id}; "
                    "complete or fail it to continue processing"
                )
            else:
                task.state = TaskState.PENDING
                logger.warning(f"Second processing task {task.id} found on load, reset to pending")
                changed = True

        if self.current_task is not None:
            if self.state.status == RunStatus.IDLE:
                self.state.status = RunStatus.PROCESSING
                changed = True
        elif self.state.status == RunStatus.PROCESSING:
            self.state.status = RunStatus.IDLE
            changed = True

        known_ids = {t.id for t in self.queue}
        for task_id in list(self.progress):
            if task_id not in known_ids:
                del self.progress[task_id]
                changed = True

        return changed

    # ============ Persistence ============

    def persist(self) -> bool:
        """
        Write the queue, run state and progress to the store.

        Failures are logged, never raised. In-memory state keeps the
        mutation and the next persist retries the write.

        Returns:
            True if the write succeeded
        """
        try:
            self.store.persist(self.queue, self.state, self.progress)
        except PersistenceError as e:
            self.dirty = True
            logger.error(f"Failed to persist queue state: {e}")
            return False

        self.dirty = False
        return True

    # ============ Queue Operations ============

    def enqueue(
        self,
        content: str,
        platform: Optional[str] = "unknown",
        user_id: Optional[str] = "unknown",
        priority: Any = Priority.NORMAL,
        metadata: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None
    ) -> Task:
        """
        Add a task to the queue.

        Args:
            content: Task payload (bullet lines become sub-tasks)
            platform: Input channel name
            user_id: Submitting user
            priority: Priority member, name or value
            metadata: Opaque context
            session_id: Opaque conversation/session ID

        Returns:
            Snapshot of the new task

        Raises:
            InvalidInput: If content is empty or priority/metadata is invalid
        """
        if not isinstance(content, str) or not content.strip():
            raise InvalidInput("Task content must be a non-empty string")
        if metadata is not None and not isinstance(metadata, dict):
            raise InvalidInput("Task metadata must be an object")

        priority = Priority.parse(priority)
        task_id = generate_task_id()

        task = Task(
            id=task_id,
            content=content,
            platform=platform or "unknown",
            user_id=user_id or "unknown",
            session_id=session_id,
            metadata=metadata or {},
            priority=priority,
            sub_tasks=parse_subtasks(task_id, content),
        )

        self.queue.insert(self._insert_index(priority), task)
        self.persist()
        logger.info(f"Enqueued: {task.id} [{task.platform}] priority:{priority.name}")

        if self.settings.auto_process and self.state.status == RunStatus.IDLE:
            self.dequeue()

        return task.model_copy(deep=True)

    def _insert_index(self, priority: Priority) -> int:
        """Position before the first task of lower urgency, else the end."""
        for i, task in enumerate(self.queue):
            if task.priority > priority:
                return i
        return len(self.queue)

    def get_next_task(self) -> Optional[Task]:
        """Get next pending task (highest priority, oldest)."""
        for task in self.queue:
            if task.state == TaskState.PENDING:
                return task
        return None

    def dequeue(self) -> Optional[Task]:
        """
        Start processing the next pending task.

        Does nothing while a task occupies the processing slot or the
        queue is paused.

        Returns:
            Snapshot of the task now processing, or None
        """
        if self.current_task is not None:
            logger.debug(f"Task {self.current_task.id} still processing, not dequeuing")
            return None

        if self.state.status == RunStatus.PAUSED:
            logger.debug("Queue paused, not dequeuing")
            return None

        task = self.get_next_task()

        if task is None:
            if self.state.status != RunStatus.IDLE:
                self.state.status = RunStatus.IDLE
                self.persist()
            logger.debug("Queue empty, waiting...")
            return None

        task.state = TaskState.PROCESSING
        if task.started_at is None:
            task.started_at = utc_now()

        self.current_task = task
        self.state.status = RunStatus.PROCESSING

        if task.sub_tasks:
            self.progress[task.id] = self._progress_of(task)

        self.persist()
        logger.info(f"Processing: {task.id} [{task.platform}]")

        return task.model_copy(deep=True)

    def complete_task(self, result: Any = None) -> bool:
        """
        Mark the current task completed and remove it from the queue.

        Args:
            result: Outcome to record on the task

        Returns:
            False if no task is processing
        """
        if self.current_task is None:
            return False

        task = self.current_task
        task.state = TaskState.COMPLETED
        task.completed_at = utc_now()
        task.result = result if result is not None else {}

        self.queue = [t for t in self.queue if t.id != task.id]
        self.progress.pop(task.id, None)

        self.state.last_processed_id = task.id
        self.state.total_processed += 1
        self._release_slot()

        self.persist()
        logger.info(f"Completed: {task.id}")

        self._advance(0)
        return True

    def fail_task(self, error: Any = None) -> bool:
        """
        Record a failed attempt of the current task.

        The task is retried until it has failed max_retries times, then
        marked failed and removed from the queue.

        Args:
            error: Error description

        Returns:
            False if no task is processing
        """
        if self.current_task is None:
            return False

        task = self.current_task
        task.retry_count += 1
        max_retries = self.settings.max_retries

        if task.retry_count >= max_retries:
            task.state = TaskState.FAILED
            task.completed_at = utc_now()
            task.error = error
            self.queue = [t for t in self.queue if t.id != task.id]
            self.progress.pop(task.id, None)
            self.state.total_failed += 1
            delay = 0.0
            logger.warning(f"Failed: {task.id} after {task.retry_count} retries: {error}")
        else:
            # Back behind tasks of the same priority
            task.state = TaskState.PENDING
            self.queue.remove(task)
            self.queue.insert(self._insert_index(task.priority), task)
            delay = self.settings.retry_delay
            logger.warning(f"Retrying: {task.id} ({task.retry_count}/{max_retries}): {error}")

        self._release_slot()
        self.persist()

        self._advance(delay)
        return True

    def complete_subtask(self, subtask_id: str) -> bool:
        """
        Mark a sub-task of the current task completed.

        Progress only; the parent task stays processing.

        Args:
            subtask_id: Sub-task ID ({task_id}_sub_{index})

        Returns:
            False if no task is processing or the sub-task is unknown
        """
        if self.current_task is None:
            return False

        task = self.current_task
        sub_task = task.get_subtask(subtask_id)
        if sub_task is None:
            return False

        sub_task.state = TaskState.COMPLETED
        progress = self._progress_of(task)
        self.progress[task.id] = progress

        self.persist()
        logger.info(f"Sub-task done: {subtask_id} ({progress.completed}/{progress.total})")
        return True

    def pause(self) -> None:
        """Stop automatic processing. The current task keeps running."""
        self.state.status = RunStatus.PAUSED
        self.persist()
        logger.info("Queue paused")

    def resume(self) -> None:
        """Resume automatic processing and pick up the next task."""
        self.state.status = (
            RunStatus.PROCESSING if self.current_task is not None else RunStatus.IDLE
        )
        self.persist()
        logger.info("Queue resumed")

        if self.settings.auto_process:
            self.dequeue()

    def clear(self) -> int:
        """
        Remove completed and failed tasks.

        Pending and processing tasks are kept.

        Returns:
            Number of tasks removed
        """
        kept = [
            t for t in self.queue
            if t.state in (TaskState.PENDING, TaskState.PROCESSING)
        ]
        removed = len(self.queue) - len(kept)
        self.queue = kept

        kept_ids = {t.id for t in kept}
        self.progress = {k: v for k, v in self.progress.items() if k in kept_ids}

        self.persist()
        logger.info(f"Queue cleared ({removed} removed)")
        return removed

    def shutdown(self) -> None:
        """Final flush before the host exits."""
        self.persist()
        logger.info("Task queue saved and shut down")

    # ============ Internal ============

    def _release_slot(self) -> None:
        """Free the processing slot; a paused queue stays paused."""
        self.current_task = None
        if self.state.status != RunStatus.PAUSED:
            self.state.status = RunStatus.IDLE

    def _advance(self, delay: float) -> None:
        """Request the next dequeue if automatic processing is on."""
        if not self.settings.auto_process or self.state.status == RunStatus.PAUSED:
            return

        if delay > 0 and self.scheduler is not None:
            self.scheduler(delay, self.dequeue)
        else:
            self.dequeue()

    @staticmethod
    def _progress_of(task: Task) -> Progress:
        return Progress(completed=task.count_completed_subtasks(), total=len(task.sub_tasks))

    # ============ Status ============

    def list_queue(self) -> List[Task]:
        """Get snapshot of all tasks in queue order."""
        return [t.model_copy(deep=True) for t in self.queue]

    def get_status(self) -> dict:
        """Get current status."""
        pending = len([t for t in self.queue if t.state == TaskState.PENDING])
        processing = len([t for t in self.queue if t.state == TaskState.PROCESSING])

        current = None
        if self.current_task is not None:
            progress = self.progress.get(self.current_task.id)
            current = {
                "id": self.current_task.id,
                "content": self.current_task.content[:CONTENT_PREVIEW_CHARS],
                "platform": self.current_task.platform,
                "priority": self.current_task.priority.name.lower(),
                "retryCount": self.current_task.retry_count,
                "progress": progress.model_dump() if progress else None,
            }

        return {
            "status": self.state.status.value,
            "queue": {
                "pending": pending,
                "processing": processing,
                "total": len(self.queue),
            },
            "stats": {
                "completed": self.state.total_processed,
                "failed": self.state.total_failed,
                "lastProcessed": self.state.last_processed_id,
            },
            "currentTask": current,
        }
