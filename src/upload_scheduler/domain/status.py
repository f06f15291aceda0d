from enum import Enum


class TaskStatus(str, Enum):
    QUEUED = "queued"
    OBTAINING_DESTINATION = "obtaining_destination"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({
    TaskStatus.OBTAINING_DESTINATION,
    TaskStatus.UPLOADING,
    TaskStatus.PROCESSING,
    TaskStatus.NOTIFYING,
})

TERMINAL_STATUSES = frozenset({
    TaskStatus.DONE,
    TaskStatus.FAILED,
    TaskStatus.CANCELED,
})


class RetryMode(str, Enum):
    """
    How a failed task is put back in the queue.

    FULL restarts the whole lifecycle and resets progress and retry accounting.
    RESUME only clears the failure and keeps progress and retry accounting.
    """
    FULL = "all"
    RESUME = "step"
