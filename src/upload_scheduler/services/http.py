import logging
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from upload_scheduler.domain.cancellation import CancellationToken
from upload_scheduler.errors import (
    AcknowledgeError,
    DestinationError,
    FinalizeError,
    TransferError,
    UploadCanceled,
)
from upload_scheduler.services.protocol import Destination, ProgressCallback, UploadService
from upload_scheduler.services.sources import DEFAULT_CHUNK_SIZE, iter_chunks

logger = logging.getLogger(__name__)


class DestinationResponse(BaseModel):
    id: str
    upload_url: str = Field(..., alias="uploadUrl")


class FinalizeResponse(BaseModel):
    id: str
    success: bool


class AcknowledgeResponse(BaseModel):
    success: bool


class HttpUploadService(UploadService):
    """
    Upload service talking to a JSON/HTTP API using aiohttp.

    Endpoints, relative to ``base_url``:
        POST /uploads                  -> {"id", "uploadUrl"}
        PUT  <uploadUrl>               raw file bytes
        POST /uploads/{id}/process     -> {"id", "success"}
        POST /uploads/{id}/complete    -> {"success"}
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers: Dict[str, str] = headers or {}
        self.chunk_size = chunk_size
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpUploadService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _post_json(self, path: str, body: Dict[str, Any], error_cls: type) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self.session.post(url, json=body) as response:
                if response.status >= 400:
                    raise error_cls(f"POST {path} failed with status {response.status}")
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise error_cls(f"POST {path} returned an invalid JSON body: {e}") from e
        except aiohttp.ClientError as e:
            raise error_cls(f"POST {path} failed: {e}") from e

    async def obtain_destination(self, name: str, content_type: str) -> Destination:
        data = await self._post_json("/uploads", {"filename": name, "type": content_type}, DestinationError)
        try:
            parsed = DestinationResponse.model_validate(data)
        except ValidationError as e:
            raise DestinationError(f"Invalid destination response: {e}") from e
        return Destination(id=parsed.id, url=parsed.upload_url)

    async def transfer(
        self,
        handle: Any,
        destination: Destination,
        on_progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> None:
        cancel_token.raise_if_cancelled()
        body = iter_chunks(handle, on_progress, cancel_token, self.chunk_size)
        try:
            async with self.session.put(destination.url, data=body) as response:
                if response.status >= 400:
                    raise TransferError(f"Upload failed with status {response.status}")
        except UploadCanceled:
            raise
        except TransferError:
            raise
        except Exception as e:
            # the body generator's cancellation may surface wrapped by aiohttp
            if cancel_token.cancelled:
                raise UploadCanceled() from e
            raise TransferError(f"Upload failed: {e}") from e
        cancel_token.raise_if_cancelled()
        on_progress(100)

    async def finalize(self, destination_id: str) -> None:
        data = await self._post_json(f"/uploads/{destination_id}/process", {}, FinalizeError)
        try:
            parsed = FinalizeResponse.model_validate(data)
        except ValidationError as e:
            raise FinalizeError(f"Invalid processing response: {e}") from e
        if not parsed.success:
            raise FinalizeError("File processing failed")

    async def acknowledge_completion(self, destination_id: str, outcome: str) -> None:
        data = await self._post_json(f"/uploads/{destination_id}/complete", {"status": outcome}, AcknowledgeError)
        try:
            parsed = AcknowledgeResponse.model_validate(data)
        except ValidationError as e:
            raise AcknowledgeError(f"Invalid completion response: {e}") from e
        if not parsed.success:
            raise AcknowledgeError("Failed to notify completion")
        logger.debug("Acknowledged %s for upload %s", outcome, destination_id)
