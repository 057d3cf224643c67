"""Shared fixtures: synthesized audio files and a fake Google Drive."""

from __future__ import annotations

import asyncio
import base64
import json
import re
import struct
from urllib.parse import unquote

import httpx
import pytest
from mutagen._vorbis import VCommentDict
from mutagen.flac import Picture
from mutagen.ogg import OggPage

from src.models.song import Thumbnail
from src.settings import Settings

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00" + bytes(range(256)) * 4 + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + bytes(range(64))

# a few bytes that look like the start of an MPEG audio stream
MPEG_TAIL = b"\xff\xfb\x90\x64" + b"\x00" * 4096

TOKEN = "test-access-token"


def _syncsafe(size: int) -> bytes:
    return bytes(
        [(size >> 21) & 0x7F, (size >> 14) & 0x7F, (size >> 7) & 0x7F, size & 0x7F]
    )


def _id3v23_frame(frame_id: bytes, body: bytes) -> bytes:
    return frame_id + struct.pack(">I", len(body)) + b"\x00\x00" + body


def apic_frame(image: bytes, mime: str = "image/jpeg", desc: str = "") -> bytes:
    body = (
        b"\x00"
        + mime.encode("latin-1")
        + b"\x00"
        + b"\x03"
        + desc.encode("latin-1")
        + b"\x00"
        + image
    )
    return _id3v23_frame(b"APIC", body)


def title_frame(title: str) -> bytes:
    return _id3v23_frame(b"TIT2", b"\x00" + title.encode("latin-1"))


def mp3_bytes(*frames: bytes) -> bytes:
    """An ID3v2.3 tag holding ``frames`` followed by MPEG-looking bytes."""
    payload = b"".join(frames)
    header = b"ID3\x03\x00\x00" + _syncsafe(len(payload))
    return header + payload + MPEG_TAIL


def mp3_with_cover(image: bytes = JPEG_BYTES, mime: str = "image/jpeg") -> bytes:
    return mp3_bytes(title_frame("Song"), apic_frame(image, mime))


def mp3_v22_with_cover(image: bytes = JPEG_BYTES, image_format: bytes = b"JPG") -> bytes:
    """An ID3v2.2 tag with a PIC frame, which names the format in three letters."""
    body = b"\x00" + image_format + b"\x03" + b"\x00" + image
    frame = b"PIC" + struct.pack(">I", len(body))[1:] + body
    return b"ID3\x02\x00\x00" + _syncsafe(len(frame)) + frame + MPEG_TAIL


def _cover_picture(image: bytes, mime: str) -> Picture:
    picture = Picture()
    picture.type = 3
    picture.mime = mime
    picture.desc = "Cover"
    picture.data = image
    return picture


def ogg_vorbis_with_cover(
    image: bytes = JPEG_BYTES, mime: str = "image/jpeg", audio_pages: int = 4
) -> bytes:
    """Ogg Vorbis headers with a METADATA_BLOCK_PICTURE comment, then audio pages."""
    identification = (
        b"\x01vorbis" + struct.pack("<IBI3i", 0, 2, 44100, 0, 128000, 0) + b"\xb8\x01"
    )
    comments = VCommentDict()
    comments["title"] = ["Song"]
    comments["metadata_block_picture"] = [
        base64.b64encode(_cover_picture(image, mime).write()).decode("ascii")
    ]
    setup = b"\x05vorbis" + b"\x00" * 32

    pages = []
    first = OggPage()
    first.first = True
    first.packets = [identification]
    pages.append(first)

    headers = OggPage()
    headers.packets = [b"\x03vorbis" + comments.write(), setup]
    pages.append(headers)

    for i in range(audio_pages):
        page = OggPage()
        page.position = (i + 1) * 1024
        page.packets = [bytes([i]) * 500]
        pages.append(page)
    pages[-1].last = True

    for sequence, page in enumerate(pages):
        page.serial = 0x5EED
        page.sequence = sequence
    return b"".join(page.write() for page in pages)


_DATA_URI_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<payload>.*)$", re.DOTALL)


def decode_data_uri(uri: str) -> Thumbnail:
    match = _DATA_URI_RE.match(uri)
    if match is None:
        raise ValueError("not a base64 data URI")
    return Thumbnail(
        mime_type=match.group("mime"), data=base64.b64decode(match.group("payload"))
    )


def flac_with_cover(image: bytes = PNG_BYTES, mime: str = "image/png") -> bytes:
    streaminfo = (
        b"\x10\x00\x10\x00"  # min/max block size
        + b"\x00" * 6  # min/max frame size
        + struct.pack(">Q", (44100 << 44) | (1 << 41) | (15 << 36))
        + b"\x00" * 16  # md5
    )
    picture_block = _cover_picture(image, mime).write()

    return (
        b"fLaC"
        + b"\x00"
        + struct.pack(">I", len(streaminfo))[1:]
        + streaminfo
        + b"\x86"
        + struct.pack(">I", len(picture_block))[1:]
        + picture_block
        + b"\xff\xf8" + b"\x00" * 512
    )


class FakeDrive:
    """In-memory stand-in for the Google token and Drive v3 endpoints."""

    def __init__(self) -> None:
        self.folders: dict[str, list[dict]] = {}
        self.media: dict[str, bytes] = {}
        self.page_size: int | None = None
        self.list_error: tuple[int, str] | None = None
        self.media_delays: dict[str, float] = {}
        self.stream_chunks: dict[str, list[bytes]] = {}
        self.stream_errors: dict[str, Exception] = {}
        self.endless_streams: set[str] = set()
        self.closed_streams: list[str] = []
        self.requests: list[httpx.Request] = []
        self.token_requests = 0

    def add_file(
        self, folder_id: str, file_id: str, name: str, data: bytes,
        mime_type: str = "audio/mpeg",
    ) -> None:
        self.folders.setdefault(folder_id, []).append(
            {"id": file_id, "name": name, "mimeType": mime_type}
        )
        self.media[file_id] = data

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "oauth2.googleapis.com":
            self.token_requests += 1
            return httpx.Response(
                200,
                json={"access_token": TOKEN, "expires_in": 3599, "token_type": "Bearer"},
            )

        if request.headers.get("authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"error": {"code": 401}})

        path = request.url.path
        if path == "/drive/v3/files":
            return self._list(request)
        if path.startswith("/drive/v3/files/"):
            file_id = unquote(path[len("/drive/v3/files/"):])
            await asyncio.sleep(self.media_delays.get(file_id, 0))
            return self._media(request, file_id)
        return httpx.Response(404)

    def _list(self, request: httpx.Request) -> httpx.Response:
        if self.list_error is not None:
            status, body = self.list_error
            return httpx.Response(
                status, content=body.encode(), headers={"content-type": "application/json"}
            )

        query = request.url.params["q"]
        folder_id = query.split("'")[1]
        files = self.folders.get(folder_id, [])

        start = int(request.url.params.get("pageToken", "0"))
        size = self.page_size or len(files) or 1
        page = files[start:start + size]
        body: dict = {"files": page}
        if start + size < len(files):
            body["nextPageToken"] = str(start + size)
        return httpx.Response(200, json=body)

    def _media(self, request: httpx.Request, file_id: str) -> httpx.Response:
        extra = {
            "cache-control": "private, max-age=0",
            "x-goog-hash": "crc32c=AAAAAA==",
            "set-cookie": "session=upstream",
        }

        if file_id in self.stream_chunks:
            chunks = self.stream_chunks[file_id]
            error = self.stream_errors.get(file_id)
            endless = file_id in self.endless_streams
            headers = {"content-type": "audio/mpeg", **extra}
            if error is None and not endless:
                headers["content-length"] = str(sum(len(c) for c in chunks))

            return httpx.Response(
                200,
                stream=_MediaStream(self, file_id, chunks, error, endless),
                headers=headers,
            )

        if file_id not in self.media:
            error = {"error": {"code": 404, "message": f"File not found: {file_id}."}}
            return httpx.Response(
                404,
                content=json.dumps(error).encode(),
                headers={"content-type": "application/json; charset=UTF-8", **extra},
            )

        data = self.media[file_id]
        range_header = request.headers.get("range")
        if range_header:
            first, last = range_header.removeprefix("bytes=").split("-")
            start = int(first)
            end = min(int(last) if last else len(data) - 1, len(data) - 1)
            chunk = data[start:end + 1]
            return httpx.Response(
                206,
                content=chunk,
                headers={
                    "content-type": "audio/mpeg",
                    "content-range": f"bytes {start}-{end}/{len(data)}",
                    "accept-ranges": "bytes",
                    **extra,
                },
            )

        return httpx.Response(
            200,
            content=data,
            headers={"content-type": "audio/mpeg", "accept-ranges": "bytes", **extra},
        )


class _MediaStream(httpx.AsyncByteStream):
    """A streamed media body that notes when the receiving side closes it."""

    def __init__(
        self, drive: FakeDrive, file_id: str, chunks: list[bytes],
        error: Exception | None, endless: bool,
    ) -> None:
        self._drive = drive
        self._file_id = file_id
        self._chunks = chunks
        self._error = error
        self._endless = endless

    async def __aiter__(self):
        while True:
            for chunk in self._chunks:
                await asyncio.sleep(0)
                yield chunk
            if self._error is not None:
                raise self._error
            if not self._endless:
                return

    async def aclose(self) -> None:
        self._drive.closed_streams.append(self._file_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        public_url="https://music.example.com",
    )


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()
