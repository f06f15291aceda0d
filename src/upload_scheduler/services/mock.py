import asyncio
import logging
import random
import time
import uuid
from typing import Any, Optional, Tuple

from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.errors import (
    AcknowledgeError,
    DestinationError,
    FinalizeError,
    TransferError,
)
from upload_scheduler.services.sources import source_size
from upload_scheduler.services.protocol import Destination, ProgressCallback, UploadService

logger = logging.getLogger(__name__)


class MockUploadService(UploadService):
    """
    Simulated upload service with random latency and failures.
    Randomness is seeded so that runs are reproducible.
    WARNING: For demonstrations and local development only.
    """

    def __init__(
        self,
        latency: Tuple[float, float] = (0.2, 1.2),
        fail_rate: float = 0.15,
        seed: int = 42,
        force_all_success: bool = False,
        tick_interval: Tuple[float, float] = (0.05, 0.1),
    ):
        if not 0 <= fail_rate <= 1:
            raise ValueError("fail_rate must be between 0 and 1")
        self.latency = latency
        self.fail_rate = fail_rate
        self.force_all_success = force_all_success
        self.tick_interval = tick_interval
        self._rng = random.Random(seed)
        self._upload_rng = random.Random(seed + 1000)

    def _random_latency(self) -> float:
        low, high = self.latency
        return low + self._rng.random() * (high - low)

    def _should_fail(self) -> bool:
        if self.force_all_success:
            return False
        return self._rng.random() < self.fail_rate

    async def obtain_destination(self, name: str, content_type: str) -> Destination:
        await asyncio.sleep(self._random_latency())
        if self._should_fail():
            raise DestinationError("Failed to get upload URL")
        upload_id = f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        return Destination(
            id=upload_id,
            url=f"https://mock-storage.example.com/upload/{name}?token=mock_token",
        )

    async def transfer(
        self,
        handle: Any,
        destination: Destination,
        on_progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> None:
        cancel_token.raise_if_cancelled()
        on_progress(0)

        try:
            size = source_size(handle)
        except (TypeError, OSError):
            size = 0
        total_chunks = max(10, min(100, size // 10000))
        chunk = 100 / total_chunks
        low, high = self.tick_interval
        interval = low + self._upload_rng.random() * (high - low)

        should_fail = not self.force_all_success and self._upload_rng.random() < self.fail_rate
        fail_at: Optional[float] = 30 + self._upload_rng.random() * 50 if should_fail else None

        progress = 0.0
        while progress < 100:
            await asyncio.sleep(interval)
            cancel_token.raise_if_cancelled()

            progress += chunk + (self._upload_rng.random() - 0.5) * chunk * 0.5
            progress = min(progress, 100.0)
            if fail_at is not None and progress >= fail_at:
                raise TransferError("Mock upload failed")
            on_progress(int(progress))

    async def finalize(self, destination_id: str) -> None:
        await asyncio.sleep(self._random_latency())
        if self._should_fail():
            raise FinalizeError("File processing failed")

    async def acknowledge_completion(self, destination_id: str, outcome: str) -> None:
        await asyncio.sleep(self._random_latency())
        if self._should_fail():
            raise AcknowledgeError("Failed to notify completion")
        logger.debug("Mock acknowledged %s for %s", outcome, destination_id)
