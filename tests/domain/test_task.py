import os
from pathlib import Path

import pytest

from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.domain.status import ACTIVE_STATUSES, TERMINAL_STATUSES, RetryMode, TaskStatus
from upload_scheduler.domain.task import FileSource, UploadTask, is_duplicate
from upload_scheduler.errors import UploadCanceled


def test_new_task_defaults(source_factory) -> None:
    task = UploadTask(source=source_factory("report.pdf"))
    assert task.id.startswith("upl_")
    assert task.status == TaskStatus.QUEUED
    assert task.progress == 0
    assert task.error is None
    assert task.cancel_token is None
    assert task.retry_attempts == 0
    assert task.created_at.tzinfo is not None


def test_task_ids_are_unique(source_factory) -> None:
    ids = {UploadTask(source=source_factory("a.txt")).id for _ in range(50)}
    assert len(ids) == 50


def test_evolve_returns_new_record(source_factory) -> None:
    task = UploadTask(source=source_factory("a.txt"))
    updated = task.evolve(status=TaskStatus.UPLOADING, progress=42)
    assert updated is not task
    assert updated.id == task.id
    assert updated.status == TaskStatus.UPLOADING
    assert updated.progress == 42
    assert task.status == TaskStatus.QUEUED


def test_evolve_clamps_progress(source_factory) -> None:
    task = UploadTask(source=source_factory("a.txt"))
    assert task.evolve(progress=130).progress == 100
    assert task.evolve(progress=-5).progress == 0


def test_task_is_frozen(source_factory) -> None:
    task = UploadTask(source=source_factory("a.txt"))
    with pytest.raises(ValueError):
        task.status = TaskStatus.DONE


def test_cancel_token_is_not_serialized(source_factory) -> None:
    task = UploadTask(source=source_factory("a.txt"), status=TaskStatus.UPLOADING, cancel_token=CancellationToken())
    assert "cancel_token" not in task.model_dump()


def test_status_buckets() -> None:
    assert TaskStatus.QUEUED not in ACTIVE_STATUSES | TERMINAL_STATUSES
    assert all(status.is_active for status in ACTIVE_STATUSES)
    assert all(status.is_terminal for status in TERMINAL_STATUSES)
    assert not ACTIVE_STATUSES & TERMINAL_STATUSES


def test_retry_mode_values() -> None:
    assert RetryMode("all") is RetryMode.FULL
    assert RetryMode("step") is RetryMode.RESUME


def test_is_duplicate_matches_name_size_and_mtime(source_factory) -> None:
    existing = [UploadTask(source=source_factory("a.txt", size=10, modified_at=1.0))]
    assert is_duplicate(source_factory("a.txt", size=10, modified_at=1.0), existing)
    assert not is_duplicate(source_factory("a.txt", size=11, modified_at=1.0), existing)
    assert not is_duplicate(source_factory("a.txt", size=10, modified_at=2.0), existing)
    assert not is_duplicate(source_factory("b.txt", size=10, modified_at=1.0), existing)


def test_file_source_from_path(tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello world")
    os.utime(path, (1_700_000_000, 1_700_000_000))

    source = FileSource.from_path(path)
    assert source.name == "notes.txt"
    assert source.size == 11
    assert source.modified_at == 1_700_000_000
    assert source.content_type == "text/plain"
    assert source.handle == path


def test_file_source_unknown_type_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "blob.unknownext"
    path.write_bytes(b"\x00")
    assert FileSource.from_path(path).content_type == "application/octet-stream"


@pytest.mark.asyncio
async def test_cancellation_token() -> None:
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()

    token.cancel()
    assert token.cancelled
    await token.wait()
    with pytest.raises(UploadCanceled, match="Upload canceled"):
        token.raise_if_cancelled()
