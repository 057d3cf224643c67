from __future__ import annotations

from urllib.parse import quote

import httpx
from loguru import logger

from src.errors import UpstreamFetchError, UpstreamListError
from src.models.song import AudioObjectRef

LIST_FIELDS = "nextPageToken, files(id,name,mimeType)"


class DriveClient:
    """Thin async wrapper over the Drive v3 files endpoints."""

    def __init__(self, http: httpx.AsyncClient, api_url: str) -> None:
        self._http = http
        self._api_url = api_url.rstrip("/")

    def media_url(self, file_id: str) -> str:
        return f"{self._api_url}/files/{quote(file_id, safe='')}"

    async def list_audio_files(self, folder_id: str, token: str) -> list[AudioObjectRef]:
        query = f"'{folder_id}' in parents and mimeType contains 'audio/'"
        params = {
            "q": query,
            "fields": LIST_FIELDS,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }

        files: list[AudioObjectRef] = []
        page_token: str | None = None
        while True:
            if page_token:
                params["pageToken"] = page_token

            response = await self._http.get(
                f"{self._api_url}/files", params=params, headers=_auth(token)
            )
            if not response.is_success:
                logger.error(f"Google Drive responded with error: {response.text}")
                raise UpstreamListError(
                    response.status_code,
                    response.text,
                    response.headers.get("content-type", "application/json"),
                )

            data = response.json()
            for item in data.get("files") or []:
                files.append(
                    AudioObjectRef(
                        id=item["id"],
                        name=item.get("name", ""),
                        mime_type=item.get("mimeType", ""),
                    )
                )

            page_token = data.get("nextPageToken")
            if not page_token:
                return files

    async def fetch_partial(self, file_id: str, token: str, byte_limit: int) -> bytes:
        """Read bytes ``0..byte_limit`` (inclusive) of a file's content.

        Reading stops at ``byte_limit + 1`` bytes even when the server
        ignores the ``Range`` header and sends the whole object.
        """
        headers = _auth(token)
        headers["Range"] = f"bytes=0-{byte_limit}"
        wanted = byte_limit + 1

        request = self._http.build_request(
            "GET", self.media_url(file_id), params={"alt": "media"}, headers=headers
        )
        response = await self._http.send(request, stream=True)
        try:
            if not response.is_success:
                raise UpstreamFetchError(response.status_code, file_id)

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer += chunk
                if len(buffer) >= wanted:
                    break
            return bytes(buffer[:wanted])
        finally:
            await response.aclose()

    async def open_media(
        self, file_id: str, token: str, range_header: str | None = None
    ) -> httpx.Response:
        """Start a media download and return as soon as headers arrive.

        The caller owns the returned response and must close it.
        """
        headers = _auth(token)
        # bytes are relayed untouched, so ask for them unencoded
        headers["Accept-Encoding"] = "identity"
        if range_header:
            headers["Range"] = range_header

        request = self._http.build_request(
            "GET", self.media_url(file_id), params={"alt": "media"}, headers=headers
        )
        return await self._http.send(request, stream=True)


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
