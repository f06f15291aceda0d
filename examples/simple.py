import asyncio
import logging
import sys
from pathlib import Path

from upload_scheduler import FileSource, RetryMode, SchedulerSettings, TaskStatus, UploadScheduler
from upload_scheduler.services.mock import MockUploadService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Upload every file given on the command line (or this script) through the simulated service
paths = [Path(arg) for arg in sys.argv[1:]] or [Path(__file__)]
scheduler = UploadScheduler(MockUploadService(), SchedulerSettings(concurrency_limit=2))


def print_progress(s: UploadScheduler) -> None:
    counts = s.counts
    print(f"\r{counts.completed}/{counts.total} finished, {counts.active} active, {s.overall_progress}% ", end="")


async def main():
    scheduler.subscribe(print_progress)
    scheduler.enqueue(FileSource.from_path(path) for path in paths)

    scheduler.set_running(True)
    await scheduler.wait_idle()
    print()

    failed = [task for task in scheduler.tasks if task.status == TaskStatus.FAILED]
    for task in failed:
        print(f"Retrying {task.name} after: {task.error}")
        scheduler.retry(task.id, RetryMode.FULL)
    if failed:
        scheduler.set_running(True)
        await scheduler.wait_idle()
        print()

    for task in scheduler.tasks:
        print(f"{task.name}: {task.status.value}" + (f" ({task.error})" if task.error else ""))
    await scheduler.stop()

if __name__ == "__main__":
    asyncio.run(main())
