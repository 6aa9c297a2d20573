"""
Durable store for the priority queue.

Three JSON resources live in the state directory:
- queue.json     - {"messages": [Task...], "updatedAt": ISO8601}
- state.json     - QueueRunState
- progress.json  - {task_id: {"completed": int, "total": int}}

Each resource is written with a temp file + atomic replace. Loading never
fails: missing or corrupt resources are replaced with defaults.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

from pydantic import ValidationError

from priority_queue.models import Task, QueueRunState, Progress, utc_now
from priority_queue.atomic import AtomicFileWriter
from priority_queue.exceptions import CorruptState, PersistenceError


QUEUE_FILE_NAME = "queue.json"
STATE_FILE_NAME = "state.json"
PROGRESS_FILE_NAME = "progress.json"

ProgressIndex = Dict[str, Progress]

logger = logging.getLogger(__name__)


class QueueStore:
    """
    Serialization boundary between the engine and the state directory.

    Owns no queue state itself; every call reads or writes the whole
    resource.
    """

    def __init__(self, state_dir: Path):
        """
        Initialize store.

        Args:
            state_dir: Directory holding the queue resources
        """
        self.state_dir = Path(state_dir)
        self.queue_file = self.state_dir / QUEUE_FILE_NAME
        self.state_file = self.state_dir / STATE_FILE_NAME
        self.progress_file = self.state_dir / PROGRESS_FILE_NAME

    def load(self) -> Tuple[List[Task], QueueRunState, ProgressIndex]:
        """
        Load queue, run state and progress from disk.

        Each resource is loaded independently; one corrupt file does
        not discard the others.

        Returns:
            Tuple of (queue, run state, progress index)
        """
        return self._load_queue(), self._load_run_state(), self._load_progress()

    def _read(self, filepath: Path):
        """Read a resource, logging and swallowing corruption."""
        try:
            return AtomicFileWriter.load_json(filepath)
        except CorruptState as e:
            logger.warning(f"{e}; starting from defaults")
            return None

    def _load_queue(self) -> List[Task]:
        data = self._read(self.queue_file)
        if data is None:
            return []

        try:
            if not isinstance(data, dict):
                raise CorruptState(self.queue_file, "expected an object with 'messages'")
            return [Task.model_validate(item) for item in data.get("messages") or []]
        except (CorruptState, ValidationError, TypeError) as e:
            logger.warning(f"Invalid queue file {self.queue_file}: {e}; starting with an empty queue")
            return []

    def _load_run_state(self) -> QueueRunState:
        data = self._read(self.state_file)
        if data is None:
            return QueueRunState()

        try:
            return QueueRunState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid run state file {self.state_file}: {e}; using defaults")
            return QueueRunState()

    def _load_progress(self) -> ProgressIndex:
        data = self._read(self.progress_file)
        if data is None:
            return {}

        try:
            if not isinstance(data, dict):
                raise CorruptState(self.progress_file, "expected an object")
            return {task_id: Progress.model_validate(entry) for task_id, entry in data.items()}
        except (CorruptState, ValidationError) as e:
            logger.warning(f"Invalid progress file {self.progress_file}: {e}; dropping progress")
            return {}

    def persist(
        self,
        queue: List[Task],
        run_state: QueueRunState,
        progress: ProgressIndex
    ) -> None:
        """
        Write all three resources.

        Args:
            queue: Ordered task list
            run_state: Run state
            progress: Progress index

        Raises:
            PersistenceError: If any resource could not be written
        """
        resources = [
            (self.queue_file, {
                "messages": [task.model_dump(mode="json", by_alias=True) for task in queue],
                "updatedAt": utc_now(),
            }),
            (self.state_file, run_state.model_dump(mode="json", by_alias=True)),
            (self.progress_file, {
                task_id: entry.model_dump(mode="json", by_alias=True)
                for task_id, entry in progress.items()
            }),
        ]

        for filepath, data in resources:
            try:
                AtomicFileWriter.write_json(filepath, data, indent=2)
            except OSError as e:
                raise PersistenceError(filepath, e) from e
