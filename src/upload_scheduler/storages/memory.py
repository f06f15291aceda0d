from typing import Any, Callable, Dict, List, Optional

from upload_scheduler.domain.task import UploadTask
from upload_scheduler.storages.protocol import TaskStore


class InMemoryTaskStore(TaskStore):
    """
    Insertion-ordered in-memory task store.
    Nothing is persisted: tasks live as long as the process does.
    """

    def __init__(self):
        self._tasks: Dict[str, UploadTask] = {}

    def add(self, task: UploadTask) -> str:
        if task.id in self._tasks:
            raise ValueError(f"Task '{task.id}' already exists")
        self._tasks[task.id] = task
        return task.id

    def get(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.get(task_id)

    def update(self, task_id: str, **changes: Any) -> Optional[UploadTask]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        updated = task.evolve(**changes)
        # dict assignment keeps the original insertion position
        self._tasks[task_id] = updated
        return updated

    def delete(self, task_id: str) -> Optional[UploadTask]:
        return self._tasks.pop(task_id, None)

    def delete_where(self, predicate: Callable[[UploadTask], bool]) -> List[UploadTask]:
        removed = [task for task in self._tasks.values() if predicate(task)]
        for task in removed:
            del self._tasks[task.id]
        return removed

    def list(self) -> List[UploadTask]:
        return list(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks
