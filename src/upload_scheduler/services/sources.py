import asyncio
import io
import os
from pathlib import Path
from typing import Any, AsyncIterator

from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.services.protocol import ProgressCallback

DEFAULT_CHUNK_SIZE = 64 * 1024


def source_size(handle: Any) -> int:
    """
    Number of bytes a transfer handle will produce.
    """
    if isinstance(handle, (bytes, bytearray, memoryview)):
        return len(handle)
    if isinstance(handle, (str, Path)):
        return os.stat(handle).st_size
    if hasattr(handle, "seek") and hasattr(handle, "tell"):
        position = handle.tell()
        handle.seek(0, io.SEEK_END)
        size = handle.tell() - position
        handle.seek(position)
        return size
    raise TypeError(f"Unsupported upload source: {type(handle).__name__}")


async def iter_chunks(
    handle: Any,
    on_progress: ProgressCallback,
    cancel_token: CancellationToken,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """
    Yield the content of a transfer handle chunk by chunk.

    The cancellation token is checked before every chunk and progress is
    reported after every chunk.
    """
    total = source_size(handle)
    sent = 0
    on_progress(0)

    if isinstance(handle, (str, Path)):
        stream = open(handle, "rb")
    elif isinstance(handle, (bytes, bytearray, memoryview)):
        stream = io.BytesIO(bytes(handle))
    else:
        stream = handle

    try:
        while True:
            cancel_token.raise_if_cancelled()
            chunk = await asyncio.to_thread(stream.read, chunk_size)
            if not chunk:
                break
            sent += len(chunk)
            on_progress(100 if total == 0 else min(100, sent * 100 // total))
            yield chunk
    finally:
        if stream is not handle:
            stream.close()


