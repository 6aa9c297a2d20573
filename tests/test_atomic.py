"""Tests for priority_queue atomic module."""

import json
import os
from unittest.mock import patch

import pytest

from priority_queue.atomic import AtomicFileWriter, FileLock
from priority_queue.exceptions import CorruptState, QueueLocked


class TestAtomicFileWriter:
    """Tests for AtomicFileWriter class."""

    def test_write_json_creates_file(self, tmp_path):
        """Test that write_json creates a file with correct content."""
        test_file = tmp_path / "test.json"
        test_data = {"key": "value", "number": 42}

        AtomicFileWriter.write_json(test_file, test_data)

        with open(test_file, 'r') as f:
            assert json.load(f) == test_data

    def test_write_json_creates_parent_dirs(self, tmp_path):
        """Test that write_json creates parent directories."""
        test_file = tmp_path / "subdir" / "nested" / "test.json"

        AtomicFileWriter.write_json(test_file, {"nested": True})

        assert json.loads(test_file.read_text()) == {"nested": True}

    def test_write_json_overwrites_existing(self, tmp_path):
        """Test that write_json overwrites existing files."""
        test_file = tmp_path / "test.json"

        AtomicFileWriter.write_json(test_file, {"old": "data"})
        AtomicFileWriter.write_json(test_file, {"new": "data"})

        assert json.loads(test_file.read_text()) == {"new": "data"}

    def test_write_json_leaves_no_temp_files(self, tmp_path):
        """Test that no temp files remain after a write."""
        AtomicFileWriter.write_json(tmp_path / "test.json", [1, 2, 3])
        assert [p.name for p in tmp_path.iterdir()] == ["test.json"]

    def test_failed_replace_keeps_old_file(self, tmp_path):
        """Test that a failed write leaves the previous content and no temp file."""
        test_file = tmp_path / "test.json"
        AtomicFileWriter.write_json(test_file, {"version": 1})

        with patch("priority_queue.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                AtomicFileWriter.write_json(test_file, {"version": 2})

        assert json.loads(test_file.read_text()) == {"version": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["test.json"]

    def test_read_json_missing_returns_default(self, tmp_path):
        """Test reading a missing file."""
        assert AtomicFileWriter.read_json(tmp_path / "nope.json") is None
        assert AtomicFileWriter.read_json(tmp_path / "nope.json", default={}) == {}

    def test_read_json_invalid_returns_default(self, tmp_path):
        """Test reading an invalid file."""
        test_file = tmp_path / "bad.json"
        test_file.write_text("{not json")
        assert AtomicFileWriter.read_json(test_file, default=[]) == []

    def test_load_json_missing_returns_none(self, tmp_path):
        assert AtomicFileWriter.load_json(tmp_path / "nope.json") is None

    def test_load_json_invalid_raises(self, tmp_path):
        """Test that truncated JSON is reported as corrupt."""
        test_file = tmp_path / "bad.json"
        test_file.write_text('{"messages": [')

        with pytest.raises(CorruptState) as exc_info:
            AtomicFileWriter.load_json(test_file)
        assert exc_info.value.path == test_file

    def test_load_json_empty_raises(self, tmp_path):
        """Test that an empty file is reported as corrupt."""
        test_file = tmp_path / "empty.json"
        test_file.write_text("  \n")

        with pytest.raises(CorruptState, match="empty file"):
            AtomicFileWriter.load_json(test_file)


class TestFileLock:
    """Tests for FileLock class."""

    def test_acquire_and_release(self, tmp_path):
        """Test basic acquire/release."""
        lock = FileLock(tmp_path / "queue.lock")

        assert lock.acquire(timeout=0)
        assert lock.held
        assert (tmp_path / "queue.lock").read_text().startswith(f"{os.getpid()}:")

        lock.release()
        assert not lock.held

    def test_acquire_is_reentrant_for_holder(self, tmp_path):
        lock = FileLock(tmp_path / "queue.lock")
        assert lock.acquire(timeout=0)
        assert lock.acquire(timeout=0)
        lock.release()

    def test_second_lock_times_out(self, tmp_path):
        """Test that a second holder cannot take the lock."""
        first = FileLock(tmp_path / "queue.lock")
        second = FileLock(tmp_path / "queue.lock")

        assert first.acquire(timeout=0)
        try:
            assert not second.acquire(timeout=0.2)
            assert not second.held
        finally:
            first.release()

        assert second.acquire(timeout=0)
        second.release()

    def test_release_without_acquire(self, tmp_path):
        """Test that releasing an unheld lock is a no-op."""
        FileLock(tmp_path / "queue.lock").release()

    def test_context_manager(self, tmp_path):
        """Test using the lock as a context manager."""
        lock = FileLock(tmp_path / "queue.lock")
        with lock:
            assert lock.held
        assert not lock.held

    def test_context_manager_raises_when_locked(self, tmp_path):
        """Test that the context manager raises QueueLocked on timeout."""
        holder = FileLock(tmp_path / "queue.lock")
        holder.acquire(timeout=0)

        try:
            with patch.object(FileLock, "acquire", return_value=False):
                with pytest.raises(QueueLocked):
                    with FileLock(tmp_path / "queue.lock"):
                        pass
        finally:
            holder.release()
