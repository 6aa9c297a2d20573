"""
Watchdog-based inbox directory input channel.

Text files dropped into the inbox directory become tasks. Writers should
create the file under a hidden name (".name.tmp") and rename it into place,
so the watcher never sees half-written content. Files written in place are
ingested once their size stops changing for the settle interval.

Inbox document format:
    priority: high          <- optional first line
    Task content...
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileSystemEvent

from priority_queue.exceptions import InvalidInput


INBOX_DIR_NAME = "inbox"
PROCESSED_DIR_NAME = "processed"
REJECTED_DIR_NAME = "rejected"
INBOX_PATTERNS = ("*.md", "*.txt")
INBOX_PLATFORM = "inbox"

logger = logging.getLogger(__name__)


class DebounceTracker:
    """
    Tracks file events with debouncing to prevent duplicate processing.

    Multiple events within the debounce window are coalesced into a single event.
    """

    def __init__(self, debounce_ms: int = 500):
        """
        Initialize debounce tracker.

        Args:
            debounce_ms: Debounce delay in milliseconds
        """
        self.debounce_seconds = debounce_ms / 1000.0
        self._last_seen: Dict[str, float] = {}

    def should_process(self, file_path: str) -> bool:
        """
        Check if file event should be processed (debounced).

        Args:
            file_path: Path to file that triggered event

        Returns:
            True if event should be processed, False if debounced
        """
        now = time.time()

        if now - self._last_seen.get(file_path, 0) < self.debounce_seconds:
            return False

        self._last_seen[file_path] = now
        return True

    def cleanup_old_events(self, max_age_seconds: float = 60.0) -> None:
        """
        Remove old event timestamps to prevent memory growth.

        Args:
            max_age_seconds: Maximum age to keep events
        """
        cutoff = time.time() - max_age_seconds
        self._last_seen = {
            path: ts
            for path, ts in self._last_seen.items()
            if ts > cutoff
        }


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        # Picked up by the observer meanwhile
        return 0.0


def parse_inbox_document(text: str) -> Tuple[str, Optional[str]]:
    """
    Split an inbox document into content and optional priority name.

    Args:
        text: File contents

    Returns:
        Tuple of (content, priority name or None)
    """
    lines = text.splitlines()
    if lines and lines[0].strip().lower().startswith("priority:"):
        priority = lines[0].split(":", 1)[1].strip()
        return "\n".join(lines[1:]).strip("\n"), priority or None
    return text, None


class InboxWatcher(FileSystemEventHandler):
    """
    Watches the inbox directory and enqueues dropped files.

    Ingested files move to inbox/processed/, unusable ones to
    inbox/rejected/.
    """

    def __init__(
        self,
        inbox_dir: Path,
        enqueue: Callable[..., Any],
        debounce_ms: int = 500,
        settle_ms: int = 200,
    ):
        """
        Initialize inbox watcher.

        Args:
            inbox_dir: Directory to watch
            enqueue: Called as enqueue(content, platform=..., priority=..., metadata=...)
            debounce_ms: Debounce delay in milliseconds
            settle_ms: How long a file written in place must keep its size
        """
        super().__init__()

        self.inbox_dir = Path(inbox_dir)
        self.processed_dir = self.inbox_dir / PROCESSED_DIR_NAME
        self.rejected_dir = self.inbox_dir / REJECTED_DIR_NAME
        self.enqueue = enqueue

        self.debounce = DebounceTracker(debounce_ms)
        self.settle_seconds = settle_ms / 1000.0
        self._ingest_lock = threading.Lock()
        self._observer: Optional[Observer] = None

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.src_path, "modified")

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.dest_path, "moved")

    def _matches(self, filepath: Path) -> bool:
        """Visible file directly inside the inbox with a known suffix."""
        if filepath.name.startswith(".") or filepath.parent.resolve() != self.inbox_dir.resolve():
            return False
        return any(filepath.match(pattern) for pattern in INBOX_PATTERNS)

    def _handle_file_event(self, file_path: str, event_type: str) -> None:
        """
        Process a file event.

        Args:
            file_path: Path to file that triggered event
            event_type: Type of event ("created", "modified" or "moved")
        """
        filepath = Path(file_path)
        if not self._matches(filepath):
            return

        # Renamed into place means complete; anything else may still be written
        if not self._is_settled(filepath, wait=event_type != "moved"):
            return

        if not self.debounce.should_process(file_path):
            logger.debug(f"Debounced {event_type} event for: {filepath.name}")
            return

        logger.debug(f"Inbox file {event_type}: {filepath.name}")

        try:
            self.ingest(filepath)
        except Exception as e:
            logger.error(f"Error ingesting {filepath.name}: {e}", exc_info=True)

        self.debounce.cleanup_old_events()

    def _is_settled(self, filepath: Path, wait: bool = True) -> bool:
        """
        Check that a file is non-empty and, if wait is set, that its size
        does not change over the settle interval.
        """
        try:
            size = filepath.stat().st_size
            if size == 0:
                return False
            if wait and self.settle_seconds > 0:
                time.sleep(self.settle_seconds)
                return filepath.stat().st_size == size
        except OSError:
            return False
        return True

    def ingest(self, filepath: Path) -> bool:
        """
        Enqueue one inbox file and move it out of the inbox.

        The observer thread and a scan may race on the same file. Reading
        and moving happen under one lock, so only one caller enqueues it.

        Args:
            filepath: Inbox file

        Returns:
            True if a task was enqueued
        """
        with self._ingest_lock:
            return self._ingest(filepath)

    def _ingest(self, filepath: Path) -> bool:
        try:
            text = filepath.read_text(encoding="utf-8")
        except FileNotFoundError:
            return False
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read inbox file {filepath.name}: {e}")
            self._move(filepath, self.rejected_dir)
            return False

        content, priority = parse_inbox_document(text)

        try:
            task = self.enqueue(
                content,
                platform=INBOX_PLATFORM,
                priority=priority,
                metadata={"file": filepath.name},
            )
        except InvalidInput as e:
            logger.warning(f"Rejected inbox file {filepath.name}: {e}")
            self._move(filepath, self.rejected_dir)
            return False

        logger.info(f"Inbox: {filepath.name} -> {task.id}")
        self._move(filepath, self.processed_dir)
        return True

    def _move(self, filepath: Path, target_dir: Path) -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / filepath.name
        if target.exists():
            target = target_dir / f"{filepath.stem}-{int(time.time() * 1000)}{filepath.suffix}"
        shutil.move(str(filepath), str(target))

    def scan_existing(self) -> int:
        """
        Ingest files already waiting in the inbox.

        Returns:
            Number of tasks enqueued
        """
        if not self.inbox_dir.exists():
            return 0

        files = sorted(
            (p for p in self.inbox_dir.iterdir() if p.is_file() and self._matches(p)),
            key=_mtime
        )
        return sum(1 for filepath in files if self.ingest(filepath))

    def start(self) -> None:
        """
        Start watching the inbox directory.

        The observer is started before the scan of files already present,
        so a file dropped in between is still seen.
        """
        if self._observer is not None:
            logger.warning(f"Inbox watcher already running for {self.inbox_dir}")
            return

        self.inbox_dir.mkdir(parents=True, exist_ok=True)

        self._observer = Observer()
        self._observer.schedule(self, str(self.inbox_dir), recursive=False)
        self._observer.start()
        logger.info(f"Watching inbox: {self.inbox_dir}")

        count = self.scan_existing()
        if count:
            logger.info(f"Inbox: ingested {count} waiting file(s)")

    def stop(self) -> None:
        """Stop watching and clean up the observer."""
        if self._observer is None:
            return

        try:
            self._observer.stop()
            self._observer.join(timeout=5.0)
        except RuntimeError as e:
            logger.error(f"Error stopping inbox observer: {e}", exc_info=True)
        finally:
            self._observer = None
        logger.debug(f"Stopped watching inbox: {self.inbox_dir}")

    def is_running(self) -> bool:
        """
        Check if the watcher is currently running.

        Returns:
            True if observer is running
        """
        return self._observer is not None and self._observer.is_alive()
