import math
from typing import Iterable, List

from pydantic import BaseModel

from upload_scheduler.domain.status import ACTIVE_STATUSES, TERMINAL_STATUSES, TaskStatus
from upload_scheduler.domain.task import UploadTask


class QueueCounts(BaseModel):
    pending: int = 0
    active: int = 0
    completed: int = 0
    total: int = 0


class QueueSummary(BaseModel):
    counts: QueueCounts
    overall_progress: int = 0


def pending_tasks(tasks: Iterable[UploadTask]) -> List[UploadTask]:
    return [task for task in tasks if task.status == TaskStatus.QUEUED]


def active_tasks(tasks: Iterable[UploadTask]) -> List[UploadTask]:
    return [task for task in tasks if task.status in ACTIVE_STATUSES]


def completed_tasks(tasks: Iterable[UploadTask]) -> List[UploadTask]:
    return [task for task in tasks if task.status in TERMINAL_STATUSES]


def overall_progress(tasks: Iterable[UploadTask]) -> int:
    """
    Mean progress of the active tasks, rounded half up. 0 when nothing is active.
    """
    active = active_tasks(tasks)
    if not active:
        return 0
    mean = sum(task.progress for task in active) / len(active)
    return int(math.floor(mean + 0.5))


def queue_counts(tasks: Iterable[UploadTask]) -> QueueCounts:
    tasks = list(tasks)
    return QueueCounts(
        pending=len(pending_tasks(tasks)),
        active=len(active_tasks(tasks)),
        completed=len(completed_tasks(tasks)),
        total=len(tasks),
    )


def summarize(tasks: Iterable[UploadTask]) -> QueueSummary:
    tasks = list(tasks)
    return QueueSummary(counts=queue_counts(tasks), overall_progress=overall_progress(tasks))
