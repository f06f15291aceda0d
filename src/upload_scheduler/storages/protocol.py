from typing import Any, Callable, List, Optional, Protocol

from upload_scheduler.domain.task import UploadTask


class TaskStore(Protocol):
    """
    Ordered collection of upload tasks.

    Methods are synchronous on purpose: every call is a complete mutation, so a
    store driven from a single event loop never exposes a half-applied change.
    """

    def add(self, task: UploadTask) -> str:
        """Append a task and return its ID."""
        ...

    def get(self, task_id: str) -> Optional[UploadTask]:
        """Retrieve a task by its ID."""
        ...

    def update(self, task_id: str, **changes: Any) -> Optional[UploadTask]:
        """Replace a task with a copy carrying the given changes. Return the new record, or None if the task is gone."""
        ...

    def delete(self, task_id: str) -> Optional[UploadTask]:
        """Delete a task by its ID. Return the removed record, or None if it did not exist."""
        ...

    def delete_where(self, predicate: Callable[[UploadTask], bool]) -> List[UploadTask]:
        """Delete every task matching the predicate and return them."""
        ...

    def list(self) -> List[UploadTask]:
        """Snapshot of all tasks in insertion order."""
        ...

    def __len__(self) -> int:
        ...
