from .status import TaskStatus, RetryMode, ACTIVE_STATUSES, TERMINAL_STATUSES
from .cancellation import CancellationToken
from .task import FileSource, UploadTask, is_duplicate

__all__ = [
    "TaskStatus", "RetryMode", "ACTIVE_STATUSES", "TERMINAL_STATUSES",
    "CancellationToken", "FileSource", "UploadTask", "is_duplicate",
]
