"""
Atomic file operations and file locking utilities.

Provides crash-safe JSON writes for the queue resources and an
inter-process lock that keeps a single writer on a state directory.
"""

import os
import time
import fcntl
import tempfile
import atexit
import json
from pathlib import Path
from typing import Any, Optional

from priority_queue.exceptions import CorruptState, QueueLocked


class AtomicFileWriter:
    """
    Atomic file writer using temp file + atomic replace.

    A crash mid-write leaves either the previous or the new file
    on disk, never a truncated one.
    """

    @staticmethod
    def write_json(filepath: Path, data: Any, indent: int = 2) -> None:
        """
        Atomically write JSON data to a file.

        Args:
            filepath: Target file path
            data: Data to serialize as JSON
            indent: JSON indentation level

        Raises:
            OSError: If the write fails (temp file is cleaned up)
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        temp_path = None
        try:
            # Temp file in the same directory so os.replace stays on one filesystem
            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=filepath.parent,
                prefix=f".{filepath.name}.",
                suffix='.tmp',
                delete=False
            ) as tmp_file:
                temp_path = Path(tmp_file.name)
                json.dump(data, tmp_file, indent=indent, default=str)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            os.replace(temp_path, filepath)

        except Exception:
            if temp_path and temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise

    @staticmethod
    def read_json(filepath: Path, default: Any = None) -> Any:
        """
        Read JSON file with safe defaults.

        Args:
            filepath: File to read
            default: Default value if file doesn't exist or is invalid

        Returns:
            Parsed JSON data or default value
        """
        try:
            data = AtomicFileWriter.load_json(filepath)
        except CorruptState:
            return default
        return default if data is None else data

    @staticmethod
    def load_json(filepath: Path) -> Any:
        """
        Read JSON file, reporting unreadable content.

        Args:
            filepath: File to read

        Returns:
            Parsed JSON data, or None if the file doesn't exist

        Raises:
            CorruptState: If the file is empty, unreadable or not valid JSON
        """
        filepath = Path(filepath)

        if not filepath.exists():
            return None

        try:
            text = filepath.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptState(filepath, str(e)) from e

        if not text.strip():
            raise CorruptState(filepath, "empty file")

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptState(filepath, str(e)) from e


class FileLock:
    """
    File-based lock using fcntl for inter-process synchronization.

    Keeps a second process from writing the same state directory.

    Usage:
        lock = FileLock(state_dir / "queue.lock")
        if lock.acquire(timeout=1):
            try:
                ...
            finally:
                lock.release()
    """

    def __init__(self, lockfile: Path):
        """
        Initialize file lock.

        Args:
            lockfile: Path to lock file (will be created if needed)
        """
        self.lockfile = Path(lockfile)
        self.lockfile.parent.mkdir(parents=True, exist_ok=True)
        self.fd: Optional[Any] = None

    @property
    def held(self) -> bool:
        """True if this instance currently holds the lock."""
        return self.fd is not None

    def acquire(self, timeout: float = 10.0) -> bool:
        """
        Acquire exclusive lock with timeout.

        Args:
            timeout: Maximum seconds to wait for lock

        Returns:
            True if lock acquired, False if timeout
        """
        if self.held:
            return True

        deadline = time.time() + timeout

        while True:
            try:
                self.fd = open(self.lockfile, 'a+')
                fcntl.flock(self.fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

                # Owner info for debugging
                self.fd.seek(0)
                self.fd.truncate()
                self.fd.write(f"{os.getpid()}:{time.time()}\n")
                self.fd.flush()

                atexit.register(self.release)
                return True

            except BlockingIOError:
                # Lock held by another process
                if self.fd:
                    self.fd.close()
                    self.fd = None

            except OSError:
                if self.fd:
                    self.fd.close()
                    self.fd = None
                raise

            if time.time() >= deadline:
                return False
            time.sleep(0.1)

    def release(self) -> None:
        """Release the lock."""
        if self.fd is None:
            return

        try:
            fcntl.flock(self.fd.fileno(), fcntl.LOCK_UN)
            self.fd.close()
        except OSError:
            pass
        finally:
            self.fd = None
            atexit.unregister(self.release)

    def __enter__(self):
        """Context manager entry."""
        if not self.acquire():
            raise QueueLocked(f"Could not acquire lock: {self.lockfile}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.release()
        return False
