import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from upload_scheduler.backoff import BackoffPolicy
from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.domain.status import TaskStatus
from upload_scheduler.domain.task import UploadTask
from upload_scheduler.errors import OperationTimeout, UploadCanceled
from upload_scheduler.services.protocol import UploadService

logger = logging.getLogger(__name__)

CANCELED_MESSAGE = "Upload canceled"
UNKNOWN_ERROR_MESSAGE = "Unknown error"

T = TypeVar("T")

# (task_id, owner_token, **changes) -> updated record, or None when the runner no longer owns the task
TaskWriter = Callable[..., Optional[UploadTask]]


class TaskSuperseded(Exception):
    """
    The task was canceled, removed or re-admitted while this run was in flight.
    """


def error_message(error: BaseException) -> str:
    return str(error) or UNKNOWN_ERROR_MESSAGE


class TaskRunner:
    """
    Drives a single admitted task through destination, transfer, finalize and
    acknowledgement, and records the outcome on the task.

    Failures never propagate out of ``run``: they end up as the task's
    terminal status and error message.
    """

    def __init__(
        self,
        service: UploadService,
        write: TaskWriter,
        backoff: Optional[BackoffPolicy] = None,
        finalize_max_attempts: int = 3,
        operation_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if finalize_max_attempts < 1:
            raise ValueError("finalize_max_attempts must be at least 1")
        self.service = service
        self._write = write
        self.backoff = backoff or BackoffPolicy()
        self.finalize_max_attempts = finalize_max_attempts
        self.operation_timeout = operation_timeout
        self._sleep = sleep

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        if self.operation_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.operation_timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(operation, self.operation_timeout) from e

    async def run(self, task: UploadTask) -> Optional[TaskStatus]:
        """
        Run an admitted task to a terminal status.

        Returns the terminal status written, or None if the task was taken away
        from this run before it finished.
        """
        token = task.cancel_token
        if token is None:
            raise ValueError(f"Task {task.id} was not admitted: it has no cancellation token")

        def write(**changes: Any) -> UploadTask:
            updated = self._write(task.id, token, **changes)
            if updated is None:
                raise TaskSuperseded(task.id)
            return updated

        def finish(status: TaskStatus, error: Optional[str] = None) -> Optional[TaskStatus]:
            if self._write(task.id, token, status=status, error=error, cancel_token=None) is None:
                logger.debug("Dropping late %s result for task %s", status.value, task.id)
                return None
            return status

        try:
            record = await self._run_steps(task, token, write)
        except TaskSuperseded:
            logger.debug("Task %s is no longer owned by this run", task.id)
            return None
        except UploadCanceled:
            logger.info("Task %s canceled", task.id)
            return finish(TaskStatus.CANCELED, CANCELED_MESSAGE)
        except asyncio.CancelledError:
            token.cancel()
            logger.info("Task %s interrupted", task.id)
            return finish(TaskStatus.CANCELED, CANCELED_MESSAGE)
        except Exception as e:
            logger.info("Task %s failed: %s", task.id, e)
            return finish(TaskStatus.FAILED, error_message(e))

        logger.info("Task %s (%s) done", record.id, record.name)
        return finish(TaskStatus.DONE)

    async def _run_steps(self, task: UploadTask, token: CancellationToken, write: Callable[..., UploadTask]) -> UploadTask:
        source = task.source
        token.raise_if_cancelled()

        destination = await self._call(
            "obtain_destination",
            self.service.obtain_destination(source.name, source.content_type),
        )
        token.raise_if_cancelled()
        record = write(status=TaskStatus.UPLOADING, progress=0, destination_id=destination.id)

        def on_progress(percent: int) -> None:
            if token.cancelled:
                return
            if self._write(task.id, token, progress=percent) is not None:
                logger.debug("Task %s progress %s%%", task.id, percent)

        await self._call(
            "transfer",
            self.service.transfer(source.handle, destination, on_progress, token),
        )
        token.raise_if_cancelled()
        record = write(status=TaskStatus.PROCESSING, progress=100)

        record = await self._finalize(record, token, write)
        token.raise_if_cancelled()
        record = write(status=TaskStatus.NOTIFYING)

        await self._call(
            "acknowledge_completion",
            self.service.acknowledge_completion(destination.id, "success"),
        )
        token.raise_if_cancelled()
        return record

    async def _finalize(self, record: UploadTask, token: CancellationToken, write: Callable[..., UploadTask]) -> UploadTask:
        for attempt in range(self.finalize_max_attempts):
            if attempt > 0:
                delay = await self.backoff.wait(attempt, self._sleep)
                logger.debug("Task %s waited %.2fs before finalize attempt %d", record.id, delay, attempt + 1)
                token.raise_if_cancelled()
            try:
                await self._call("finalize", self.service.finalize(record.destination_id))
                return record
            except UploadCanceled:
                raise
            except Exception as e:
                record = write(retry_attempts=record.retry_attempts + 1)
                if attempt + 1 >= self.finalize_max_attempts:
                    raise
                logger.warning(
                    "Finalize attempt %d/%d for task %s failed: %s",
                    attempt + 1, self.finalize_max_attempts, record.id, e,
                )
        return record
