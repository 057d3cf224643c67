from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
from loguru import logger
from starlette.responses import Response, StreamingResponse

from src.drive.client import DriveClient
from src.drive.credentials import GoogleCredentials

FORWARDED_HEADERS = frozenset(
    {"content-type", "content-length", "accept-ranges", "content-range"}
)


def forwarded_headers(headers: httpx.Headers) -> dict[str, str]:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() in FORWARDED_HEADERS
    }


class StreamProxy:
    def __init__(
        self, drive: DriveClient, credentials: GoogleCredentials, chunk_size: int
    ) -> None:
        self._drive = drive
        self._credentials = credentials
        self._chunk_size = chunk_size

    async def stream(self, file_id: str, range_header: str | None = None) -> Response:
        """Relay a Drive file to the client with its upstream status.

        Errors raised here happen before anything is sent, so the route can
        still answer with a JSON error.
        """
        token = await self._credentials.get_access_token()
        upstream = await self._drive.open_media(file_id, token, range_header)

        status = upstream.status_code
        headers = forwarded_headers(upstream.headers)
        if status >= 400:
            logger.warning(f"Drive media request for {file_id} returned {status}")

        try:
            content = upstream.content
        except httpx.ResponseNotRead:
            return StreamingResponse(
                self._relay(file_id, upstream), status_code=status, headers=headers
            )

        # already buffered by the transport, nothing left to pipe
        await upstream.aclose()
        return Response(content=content, status_code=status, headers=headers)

    async def _relay(self, file_id: str, upstream: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in upstream.aiter_raw(chunk_size=self._chunk_size):
                yield chunk
        except httpx.HTTPError as exc:
            # Headers are gone already; dropping the connection is all that's left.
            logger.warning(f"Upstream read error while proxying {file_id}: {exc}")
            raise
        finally:
            await upstream.aclose()
