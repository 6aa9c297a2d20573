"""
Exceptions raised by the priority queue.

Only validation errors reach callers of the engine. Persistence and
corruption errors are logged by the engine and store and never crash the
process.
"""


class QueueError(Exception):
    """Base class for all queue errors."""


class InvalidInput(QueueError, ValueError):
    """Rejected enqueue payload (empty content, unknown priority, ...)."""


class PersistenceError(QueueError):
    """Writing a resource to the state directory failed."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Could not write {path}: {cause}")


class CorruptState(QueueError):
    """A resource on disk could not be parsed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt state file {path}: {reason}")


class QueueLocked(QueueError):
    """Another process holds the state directory lock."""
