import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pytest

from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.domain.task import FileSource
from upload_scheduler.services.protocol import Destination, ProgressCallback, UploadService


class FakeUploadService(UploadService):
    """
    Upload service whose steps succeed instantly unless told otherwise.

    Failures are configured per file name; transfers can be held open with
    ``hold`` and let through with ``release``.
    """

    def __init__(self):
        self.destination_errors: Dict[str, Exception] = {}
        self.transfer_errors: Dict[str, Exception] = {}
        self.finalize_outcomes: Dict[str, List[Optional[Exception]]] = {}
        self.acknowledge_errors: Dict[str, Exception] = {}
        self.progress_steps: List[int] = [25, 50, 75, 100]
        self.calls: List[Tuple[str, str]] = []
        self._gates: Dict[str, asyncio.Event] = {}
        self._names: Dict[str, str] = {}

    def hold(self, name: str) -> None:
        self._gates[name] = asyncio.Event()

    def release(self, name: str) -> None:
        self._gates[name].set()

    def calls_for(self, operation: str) -> List[str]:
        return [name for op, name in self.calls if op == operation]

    async def obtain_destination(self, name: str, content_type: str) -> Destination:
        self.calls.append(("obtain_destination", name))
        await asyncio.sleep(0)
        if name in self.destination_errors:
            raise self.destination_errors[name]
        destination = Destination(id=f"dst-{name}", url=f"https://storage.test/{name}")
        self._names[destination.id] = name
        return destination

    async def transfer(
        self,
        handle: Any,
        destination: Destination,
        on_progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> None:
        name = self._names[destination.id]
        self.calls.append(("transfer", name))
        on_progress(0)
        gate = self._gates.get(name)
        while gate is not None and not gate.is_set():
            cancel_token.raise_if_cancelled()
            await asyncio.sleep(0.001)
        for percent in self.progress_steps:
            cancel_token.raise_if_cancelled()
            await asyncio.sleep(0)
            on_progress(percent)
        if name in self.transfer_errors:
            raise self.transfer_errors[name]

    async def finalize(self, destination_id: str) -> None:
        name = self._names[destination_id]
        self.calls.append(("finalize", name))
        await asyncio.sleep(0)
        outcomes = self.finalize_outcomes.get(name)
        if outcomes:
            error = outcomes.pop(0)
            if error is not None:
                raise error

    async def acknowledge_completion(self, destination_id: str, outcome: str) -> None:
        name = self._names[destination_id]
        self.calls.append(("acknowledge_completion", name))
        await asyncio.sleep(0)
        if name in self.acknowledge_errors:
            raise self.acknowledge_errors[name]


def make_source(name: str, size: int = 1024, modified_at: float = 1_700_000_000.0) -> FileSource:
    return FileSource(name=name, size=size, modified_at=modified_at, content_type="text/plain", handle=b"x" * size)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


class RecordingSleep:
    """
    Stand-in for asyncio.sleep that records requested delays without waiting.
    """

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture(scope="function")
def service() -> FakeUploadService:
    return FakeUploadService()


@pytest.fixture(scope="function")
def source_factory() -> Callable[..., FileSource]:
    return make_source


@pytest.fixture(scope="function")
def eventually() -> Callable[..., Awaitable[None]]:
    return wait_until


@pytest.fixture(scope="function")
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
