import mimetypes
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .cancellation import CancellationToken
from .status import TaskStatus

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileSource(BaseModel):
    """
    Describes the file behind an upload task.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., description="File name as shown to the user and sent to the destination service")
    size: int = Field(..., ge=0, description="Size in bytes")
    modified_at: float = Field(..., description="Content modification time, seconds since the epoch")
    content_type: str = Field(default=DEFAULT_CONTENT_TYPE, description="MIME type of the content")
    handle: Any = Field(default=None, description="Byte source used by the transfer step (path, bytes, file object)")

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "FileSource":
        path = Path(path)
        stat = path.stat()
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or DEFAULT_CONTENT_TYPE
        return cls(
            name=path.name,
            size=stat.st_size,
            modified_at=stat.st_mtime,
            content_type=content_type,
            handle=path,
        )

    @property
    def fingerprint(self) -> tuple:
        return (self.name, self.size, self.modified_at)


class UploadTask(BaseModel):
    """
    Snapshot of one file's upload lifecycle.

    Records are immutable: every state change produces a new record through
    ``evolve`` which replaces the previous one in the task store.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: f"upl_{uuid.uuid4().hex[:8]}", description="Unique task identifier")
    source: FileSource = Field(..., description="File being uploaded")
    status: TaskStatus = TaskStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100, description="Upload progress in percent")
    error: Optional[str] = Field(default=None, description="Failure or cancellation message")
    cancel_token: Optional[CancellationToken] = Field(default=None, exclude=True, repr=False)
    retry_attempts: int = Field(default=0, ge=0, description="Failed finalize attempts since the last full retry")
    destination_id: Optional[str] = Field(default=None, description="Identifier assigned by the destination service")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(ZoneInfo("UTC")),
        description="Enqueue timestamp with UTC timezone"
    )

    @field_validator("progress", mode="before")
    def clamp_progress(cls, v: Any) -> int:
        return max(0, min(100, int(v)))

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def evolve(self, **changes: Any) -> "UploadTask":
        if "progress" in changes:
            changes["progress"] = max(0, min(100, int(changes["progress"])))
        return self.model_copy(update=changes)


def is_duplicate(candidate: FileSource, existing: Iterable[UploadTask]) -> bool:
    """
    A file counts as already enqueued when name, size and modification time all match.
    """
    fingerprint = candidate.fingerprint
    return any(task.source.fingerprint == fingerprint for task in existing)
