from typing import Any, Callable, Protocol

from pydantic import BaseModel, Field

from upload_scheduler.domain.cancellation import CancellationToken

ProgressCallback = Callable[[int], None]


class Destination(BaseModel):
    id: str = Field(..., description="Identifier used by the finalize and acknowledge steps")
    url: str = Field(..., description="Where the file bytes are sent")


class UploadService(Protocol):
    """
    Protocol class for the remote side of an upload.

    Every method may raise; the task runner turns failures into task state.
    """

    async def obtain_destination(self, name: str, content_type: str) -> Destination:
        """
        Request a transfer destination for a file.

        Args:
            name (str): The file name.
            content_type (str): The MIME type of the file.
        """
        ...

    async def transfer(
        self,
        handle: Any,
        destination: Destination,
        on_progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> None:
        """
        Send the file bytes to the destination.

        Must call ``on_progress`` with an integer percent as data is sent and
        raise ``UploadCanceled`` once ``cancel_token`` is cancelled, checking
        it at least on every progress tick.
        """
        ...

    async def finalize(self, destination_id: str) -> None:
        """
        Ask the service to process an uploaded file. Safe to call more than once.
        """
        ...

    async def acknowledge_completion(self, destination_id: str, outcome: str) -> None:
        """
        Report the final outcome of an upload.
        """
        ...
