"""
Serialized access to the queue engine.

The engine itself is single-caller. QueueService puts one re-entrant lock in
front of it and routes every caller through that lock:
- request handlers (HTTP, CLI, inbox watcher)
- delayed auto-advance timers
- the periodic safety flush

It also owns the state directory lock, so only one process writes the
queue files at a time.
"""

import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from priority_queue.models import QueueSettings, Task, utc_now
from priority_queue.store import QueueStore
from priority_queue.engine import TaskQueue
from priority_queue.atomic import FileLock
from priority_queue.exceptions import QueueLocked


LOCK_FILE_NAME = "queue.lock"

logger = logging.getLogger(__name__)


class QueueService:
    """
    Thread-safe facade over TaskQueue.

    Background mode (long-running hosts) adds timer-based auto-advance and
    the periodic flush thread. Foreground mode (one-shot CLI commands)
    runs everything synchronously.
    """

    def __init__(
        self,
        state_dir: Path,
        settings: Optional[QueueSettings] = None,
        background: bool = True
    ):
        """
        Initialize service.

        Args:
            state_dir: Directory holding the queue resources
            settings: Queue settings (defaults if None)
            background: Run timers and the flush thread
        """
        self.state_dir = Path(state_dir)
        self.settings = settings or QueueSettings()
        self.background = background

        self.lock = FileLock(self.state_dir / LOCK_FILE_NAME)
        self.engine: Optional[TaskQueue] = None

        self._mutex = threading.RLock()
        self._stop = threading.Event()
        self._timers: Set[threading.Timer] = set()
        self._flusher: Optional[threading.Thread] = None

    # ============ Lifecycle ============

    def start(self, lock_timeout: float = 0.0) -> None:
        """
        Lock the state directory, load the queue and start background work.

        Args:
            lock_timeout: Seconds to wait for another process to let go

        Raises:
            QueueLocked: If another process holds the state directory
        """
        if not self.lock.acquire(timeout=lock_timeout):
            raise QueueLocked(
                f"Queue state in {self.state_dir} is in use by another process"
            )

        self._stop.clear()
        scheduler = self._schedule if self.background else None

        with self._mutex:
            self.engine = TaskQueue(QueueStore(self.state_dir), self.settings, scheduler=scheduler)

            if self.background:
                self.engine.state.session_id = uuid.uuid4().hex[:12]
                self.engine.state.started_at = utc_now()
                self.engine.persist()

                # Pick up work left pending by a previous run
                if self.settings.auto_process:
                    self.engine.dequeue()

        if self.background:
            self._flusher = threading.Thread(
                target=self._flush_loop,
                name="queue-flush",
                daemon=True
            )
            self._flusher.start()
            logger.info(
                f"Queue service started (state: {self.state_dir}, "
                f"flush every {self.settings.persist_interval}s)"
            )

    def stop(self) -> None:
        """Cancel timers, stop the flush thread, save and unlock."""
        self._stop.set()

        with self._mutex:
            for timer in list(self._timers):
                timer.cancel()
            self._timers.clear()

        if self._flusher is not None:
            self._flusher.join(timeout=5.0)
            if self._flusher.is_alive():
                logger.warning("Flush thread did not stop gracefully")
            self._flusher = None

        with self._mutex:
            if self.engine is not None:
                self.engine.shutdown()
                self.engine = None

        self.lock.release()

    def __enter__(self) -> "QueueService":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # ============ Background work ============

    def _schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        """Run callback after delay seconds, under the service lock."""
        def fire():
            with self._mutex:
                self._timers.discard(timer)
                if self._stop.is_set() or self.engine is None:
                    return
                callback()

        timer = threading.Timer(delay, fire)
        timer.daemon = True

        with self._mutex:
            self._timers.add(timer)
        timer.start()

    def _flush_loop(self) -> None:
        """Persist on a fixed interval until stopped."""
        while not self._stop.wait(self.settings.persist_interval):
            self.flush()

    def flush(self) -> bool:
        """Write the current state to disk."""
        with self._mutex:
            return self._require_engine().persist()

    def _require_engine(self) -> TaskQueue:
        if self.engine is None:
            raise RuntimeError("Queue service is not started")
        return self.engine

    # ============ Operations ============

    def enqueue(self, content: str, **options) -> Task:
        """Add a task. Options as for TaskQueue.enqueue."""
        with self._mutex:
            return self._require_engine().enqueue(content, **options)

    def dequeue(self) -> Optional[Task]:
        """Start the next pending task, if the slot is free."""
        with self._mutex:
            return self._require_engine().dequeue()

    def complete_task(self, result: Any = None) -> bool:
        """Complete the current task."""
        with self._mutex:
            return self._require_engine().complete_task(result)

    def fail_task(self, error: Any = None) -> bool:
        """Fail the current task."""
        with self._mutex:
            return self._require_engine().fail_task(error)

    def complete_subtask(self, subtask_id: str) -> bool:
        """Complete a sub-task of the current task."""
        with self._mutex:
            return self._require_engine().complete_subtask(subtask_id)

    def pause(self) -> None:
        with self._mutex:
            self._require_engine().pause()

    def resume(self) -> None:
        with self._mutex:
            self._require_engine().resume()

    def clear(self) -> int:
        with self._mutex:
            return self._require_engine().clear()

    def get_status(self) -> Dict[str, Any]:
        with self._mutex:
            return self._require_engine().get_status()

    def list_queue(self) -> List[Task]:
        with self._mutex:
            return self._require_engine().list_queue()
