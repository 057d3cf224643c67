from __future__ import annotations

import asyncio
from urllib.parse import quote

from loguru import logger

from src.drive.client import DriveClient
from src.drive.credentials import GoogleCredentials
from src.models.song import AudioObjectRef, SongDescriptor, Thumbnail
from src.services import cover_art
from src.settings import Settings


class MusicLibrary:
    def __init__(
        self, settings: Settings, drive: DriveClient, credentials: GoogleCredentials
    ) -> None:
        self._settings = settings
        self._drive = drive
        self._credentials = credentials

    async def list_songs(self, folder_id: str, base_url: str) -> list[SongDescriptor]:
        """List audio files in a Drive folder along with their cover art.

        Thumbnails are fetched concurrently but the result keeps the order
        Drive listed the files in.
        """
        token = await self._credentials.get_access_token()
        files = await self._drive.list_audio_files(folder_id, token)

        # per request: concurrent listings don't share a budget
        limit = asyncio.Semaphore(self._settings.thumbnail_concurrency)

        async def bounded(ref: AudioObjectRef) -> Thumbnail | None:
            async with limit:
                return await self._fetch_thumbnail(ref.id, token, ref.mime_type)

        thumbnails = await asyncio.gather(*(bounded(ref) for ref in files))

        base = base_url.rstrip("/")
        return [
            SongDescriptor(
                id=ref.id,
                name=ref.name,
                mime_type=ref.mime_type,
                thumbnail=thumb.data_uri() if thumb is not None else None,
                url=f"{base}/proxy?fileId={quote(ref.id, safe='')}",
            )
            for ref, thumb in zip(files, thumbnails)
        ]

    async def thumbnail(self, file_id: str) -> Thumbnail | None:
        token = await self._credentials.get_access_token()
        return await self._fetch_thumbnail(file_id, token)

    async def _fetch_thumbnail(
        self, file_id: str, token: str, hinted_mime: str = "audio/mpeg"
    ) -> Thumbnail | None:
        try:
            buffer = await self._drive.fetch_partial(
                file_id, token, self._settings.thumbnail_probe_bytes
            )
        except Exception as exc:
            logger.warning(f"Thumbnail fetch failed for {file_id}: {exc}")
            return None

        thumb = cover_art.extract(buffer, hinted_mime)
        if thumb is None:
            logger.debug(f"No embedded cover art in {file_id}")
        return thumb
