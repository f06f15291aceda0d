"""
Upload Scheduling System

This module defines the core concepts and components of a bounded upload queue.

Core Concepts:

UploadTask:
    An UploadTask represents one file's end-to-end upload: obtaining a destination,
    transferring the bytes, finalizing the upload and acknowledging completion.
    Tasks are immutable snapshots; every state change replaces the stored record.

UploadScheduler:
    The UploadScheduler admits queued tasks in FIFO order while the number of
    active tasks stays under the concurrency limit. It re-evaluates after every
    change, so finished tasks are replaced without polling.

TaskRunner:
    A TaskRunner drives a single admitted task through its steps, retries the
    finalize step with exponential backoff and records failures and
    cancellations on the task.

Relationships:
    - The scheduler owns the task store and starts one runner per admitted task.
    - Runners talk to the remote side only through an UploadService.
"""

from .config import SchedulerSettings
from .domain import FileSource, RetryMode, TaskStatus, UploadTask
from .scheduler import UploadScheduler

__all__ = ["SchedulerSettings", "FileSource", "RetryMode", "TaskStatus", "UploadTask", "UploadScheduler"]
