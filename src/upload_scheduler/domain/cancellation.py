import asyncio

from upload_scheduler.errors import UploadCanceled


class CancellationToken:
    """
    Cooperative cancellation signal handed to an in-flight task.

    Setting the token never interrupts anything by itself: the running step has
    to check it (or wait on it) and stop on its own.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise UploadCanceled()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
