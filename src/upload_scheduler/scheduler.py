import asyncio
import functools
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from upload_scheduler.backoff import BackoffPolicy
from upload_scheduler.config import SchedulerSettings
from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.domain.status import RetryMode, TaskStatus, TERMINAL_STATUSES
from upload_scheduler.domain.task import FileSource, UploadTask, is_duplicate
from upload_scheduler.runner import CANCELED_MESSAGE, TaskRunner, error_message
from upload_scheduler.services.protocol import UploadService
from upload_scheduler.storages.memory import InMemoryTaskStore
from upload_scheduler.storages.protocol import TaskStore
from upload_scheduler import views

logger = logging.getLogger(__name__)

Listener = Callable[["UploadScheduler"], None]


class UploadScheduler:
    """
    Admits queued upload tasks into task runners under a fixed concurrency limit.

    Admission is reactive: a pass runs after every change to the task set and
    every change of the run flag. All methods except ``stop`` and
    ``wait_idle`` are synchronous and must be called from the event loop that
    runs the uploads; this keeps every mutation of the task store atomic.
    """

    def __init__(
        self,
        service: UploadService,
        settings: Optional[SchedulerSettings] = None,
        *,
        store: Optional[TaskStore] = None,
        concurrency_limit: Optional[int] = None,
        backoff: Optional[BackoffPolicy] = None,
        finalize_max_attempts: Optional[int] = None,
        operation_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or SchedulerSettings()
        self.concurrency_limit: int = concurrency_limit if concurrency_limit is not None else settings.concurrency_limit
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        self.store: TaskStore = store if store is not None else InMemoryTaskStore()
        self.runner = TaskRunner(
            service,
            self._write,
            backoff=backoff or settings.backoff,
            finalize_max_attempts=finalize_max_attempts or settings.finalize_max_attempts,
            operation_timeout=operation_timeout if operation_timeout is not None else settings.operation_timeout,
            sleep=sleep,
        )

        self._is_running: bool = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._listeners: List[Listener] = []
        self._scheduling: bool = False
        self._rerun: bool = False

    # -- read-only views --------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def tasks(self) -> List[UploadTask]:
        return self.store.list()

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self.store.get(task_id)

    @property
    def in_flight(self) -> frozenset:
        return frozenset(self._in_flight)

    @property
    def pending(self) -> List[UploadTask]:
        return views.pending_tasks(self.store.list())

    @property
    def active(self) -> List[UploadTask]:
        return views.active_tasks(self.store.list())

    @property
    def completed(self) -> List[UploadTask]:
        return views.completed_tasks(self.store.list())

    @property
    def counts(self) -> views.QueueCounts:
        return views.queue_counts(self.store.list())

    @property
    def overall_progress(self) -> int:
        return views.overall_progress(self.store.list())

    @property
    def summary(self) -> views.QueueSummary:
        return views.summarize(self.store.list())

    # -- consumer actions -------------------------------------------------

    def enqueue(self, sources: Iterable[FileSource]) -> List[UploadTask]:
        """
        Add a task per file, skipping files that are already in the queue.
        """
        existing = self.store.list()
        added: List[UploadTask] = []
        for source in sources:
            if is_duplicate(source, existing):
                logger.debug("Skipping duplicate file %s", source.name)
                continue
            task = UploadTask(source=source)
            self.store.add(task)
            existing.append(task)
            added.append(task)
        if added:
            logger.info("Enqueued %d upload(s)", len(added))
            self._changed()
        return added

    def set_running(self, running: bool = True) -> None:
        if running == self._is_running:
            self._changed()
            return
        self._is_running = running
        if running:
            self._idle.clear()
            logger.info("Upload scheduler started (concurrency=%d)", self.concurrency_limit)
        else:
            self._idle.set()
            logger.info("Upload scheduler paused")
        self._changed()

    def cancel(self, task_id: str) -> bool:
        task = self.store.get(task_id)
        if task is None:
            return False
        if task.cancel_token is not None:
            task.cancel_token.cancel()
        self.store.update(task_id, status=TaskStatus.CANCELED, error=CANCELED_MESSAGE, cancel_token=None)
        self._in_flight.pop(task_id, None)
        logger.info("Task %s canceled by user", task_id)
        self._changed()
        return True

    def remove(self, task_id: str) -> bool:
        task = self.store.delete(task_id)
        if task is None:
            return False
        if task.cancel_token is not None:
            task.cancel_token.cancel()
        self._in_flight.pop(task_id, None)
        logger.info("Task %s removed", task_id)
        self._changed()
        return True

    def retry(self, task_id: str, mode: Union[RetryMode, str] = RetryMode.FULL) -> bool:
        """
        Put a failed task back in the queue. Only failed tasks can be retried.
        """
        mode = RetryMode(mode)
        task = self.store.get(task_id)
        if task is None or task.status != TaskStatus.FAILED:
            return False
        if mode == RetryMode.FULL:
            self.store.update(
                task_id, status=TaskStatus.QUEUED, progress=0, retry_attempts=0, error=None, cancel_token=None,
            )
        else:
            self.store.update(task_id, status=TaskStatus.QUEUED, error=None, cancel_token=None)
        logger.info("Task %s re-queued (%s retry)", task_id, mode.name.lower())
        self._changed()
        return True

    def clear_completed(self) -> int:
        removed = self.store.delete_where(lambda task: task.status in TERMINAL_STATUSES)
        if removed:
            logger.info("Cleared %d completed upload(s)", len(removed))
            self._changed()
        return len(removed)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` after every change. Returns a function that unsubscribes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_idle(self) -> None:
        """
        Wait until the scheduler is no longer running.
        """
        await self._idle.wait()

    async def stop(self) -> None:
        """
        Stop admitting tasks and cancel every task in flight.
        """
        self._is_running = False
        self._idle.set()
        futures = list(self._in_flight.values())
        for future in futures:
            if not future.done():
                future.cancel()
        await asyncio.gather(*futures, return_exceptions=True)
        self._in_flight.clear()
        logger.info("Upload scheduler stopped")
        self._notify()

    # -- internals --------------------------------------------------------

    def _write(self, task_id: str, owner: CancellationToken, **changes) -> Optional[UploadTask]:
        """
        Apply a runner's update, unless the task has since left that runner's hands.
        """
        task = self.store.get(task_id)
        if task is None or task.cancel_token is not owner:
            return None
        updated = self.store.update(task_id, **changes)
        if changes.get("status") in TERMINAL_STATUSES:
            # the slot is free as soon as the outcome is recorded
            self._in_flight.pop(task_id, None)
        self._changed()
        return updated

    def _changed(self) -> None:
        self._reschedule()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Upload scheduler listener failed")

    def _reschedule(self) -> None:
        if self._scheduling:
            self._rerun = True
            return
        self._scheduling = True
        try:
            self._rerun = True
            while self._rerun:
                self._rerun = False
                self._admission_pass()
        finally:
            self._scheduling = False

    def _admission_pass(self) -> None:
        if not self._is_running:
            return

        tasks = self.store.list()
        queued = views.pending_tasks(tasks)
        active = views.active_tasks(tasks)

        if not queued and not active:
            self._is_running = False
            self._idle.set()
            logger.info("Upload scheduler idle")
            return

        slots = self.concurrency_limit - len(active)
        if slots <= 0:
            return

        for task in [t for t in queued if t.id not in self._in_flight][:slots]:
            self._admit(task)

    def _admit(self, task: UploadTask) -> None:
        token = CancellationToken()
        record = self.store.update(task.id, status=TaskStatus.OBTAINING_DESTINATION, cancel_token=token, error=None)
        future = asyncio.create_task(self.runner.run(record), name=f"upload-{task.id}")
        self._in_flight[task.id] = future
        future.add_done_callback(functools.partial(self._handle_run_completion, task.id))
        logger.info("Admitted task %s (%s)", task.id, task.name)

    def _handle_run_completion(self, task_id: str, future: asyncio.Task) -> None:
        if self._in_flight.get(task_id) is not future:
            return
        del self._in_flight[task_id]

        task = self.store.get(task_id)
        if future.cancelled():
            # cancelled before the runner got to record anything
            if task is not None and task.is_active:
                if task.cancel_token is not None:
                    task.cancel_token.cancel()
                self.store.update(task_id, status=TaskStatus.CANCELED, error=CANCELED_MESSAGE, cancel_token=None)
        elif future.exception() is not None:
            error = future.exception()
            logger.error("Runner for task %s crashed: %s", task_id, error)
            if task is not None and task.is_active:
                self.store.update(task_id, status=TaskStatus.FAILED, error=error_message(error), cancel_token=None)
        self._changed()
