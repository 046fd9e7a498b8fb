# ==============================================================================
# Transition Engine Errors
# ==============================================================================
"""
Exception hierarchy raised by the transition engine.

- NotFoundError: a referenced project or event identity is missing
- StorageError: a read/write against a repository failed (never retried here)
  - StatementTimeoutError: the storage backend cancelled a statement for running too long
- ComputeTimeoutError: a full recompute ran past its deadline
- GraphBoundsError: graph traversal parameters outside the configured bounds
"""


class TransitionError(Exception):
    """Base class for all transition engine errors."""


class NotFoundError(TransitionError):
    """A referenced entity does not exist."""


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class EventIdentityNotFoundError(NotFoundError):
    def __init__(self, event_identity_id: str):
        super().__init__(f"Event identity not found: {event_identity_id}")
        self.event_identity_id = event_identity_id


class StorageError(TransitionError):
    """A repository operation failed. The original exception is chained."""


class StatementTimeoutError(StorageError):
    """A statement was cancelled by the storage-side time limit."""


class ComputeTimeoutError(TransitionError):
    """A full recompute exceeded its deadline and was rolled back."""

    def __init__(self, project_id: str, timeout_seconds: float):
        super().__init__(
            f"Transition computation for project {project_id} "
            f"exceeded {timeout_seconds:g}s deadline"
        )
        self.project_id = project_id
        self.timeout_seconds = timeout_seconds


class GraphBoundsError(TransitionError, ValueError):
    """Graph traversal top_n/depth outside the allowed range."""
