"""Embedded cover art extraction from the leading bytes of an audio file.

Only a prefix of the file is available, so parsing sticks to the metadata
that lives at the front of a container: ID3v2 tags, FLAC metadata blocks,
Ogg comment headers and MP4 files whose ``moov`` atom comes first.
"""

from __future__ import annotations

import base64
import io
from typing import Any, Iterator

import mutagen
from loguru import logger
from mutagen.aiff import AIFF
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4, MP4Cover
from mutagen.oggflac import OggFLAC
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis
from mutagen.wave import WAVE

from src.errors import ExtractionError
from src.models.song import Thumbnail

DEFAULT_IMAGE_MIME = "image/jpeg"

_HINTED_TYPES: dict[str, list[type]] = {
    "audio/mpeg": [MP3],
    "audio/mp3": [MP3],
    "audio/flac": [FLAC],
    "audio/x-flac": [FLAC],
    "audio/mp4": [MP4],
    "audio/m4a": [MP4],
    "audio/x-m4a": [MP4],
    "audio/aac": [MP4],
    "audio/ogg": [OggVorbis, OggOpus, OggFLAC],
    "audio/opus": [OggOpus],
    "audio/wav": [WAVE],
    "audio/x-wav": [WAVE],
    "audio/aiff": [AIFF],
    "audio/x-aiff": [AIFF],
}

# ID3v2.2 PIC frames carry a three letter image format instead of a mime.
_SHORT_FORMATS = {
    "JPG": "image/jpeg",
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


def extract(buffer: bytes, hinted_mime: str | None = None) -> Thumbnail | None:
    """Return the first embedded picture in ``buffer``, or ``None``.

    Never raises: a missing picture and an unparseable buffer look the same
    to the caller.
    """
    try:
        return parse_cover_art(buffer, hinted_mime)
    except Exception as exc:
        logger.debug(f"Cover art extraction failed: {exc}")
        return None


def parse_cover_art(buffer: bytes, hinted_mime: str | None = None) -> Thumbnail | None:
    if not buffer:
        raise ExtractionError("empty buffer")

    if buffer.startswith(b"ID3"):
        # Tag only: the MPEG stream after it is cut short anyway.
        tags = ID3(io.BytesIO(_complete_frames(buffer)))
        return _first(_id3_pictures(tags))

    audio = _load(buffer, hinted_mime)
    if audio is None:
        raise ExtractionError("unrecognized audio container")
    return _first(_pictures(audio))


def _load(buffer: bytes, hinted_mime: str | None) -> Any:
    preferred = _HINTED_TYPES.get((hinted_mime or "").split(";")[0].strip().lower())
    if preferred:
        try:
            audio = mutagen.File(io.BytesIO(buffer), options=preferred)
        except mutagen.MutagenError as exc:
            logger.debug(f"Parsing as {hinted_mime} failed, trying all containers: {exc}")
        else:
            if audio is not None:
                return audio

    return mutagen.File(io.BytesIO(buffer))


def _complete_frames(buffer: bytes) -> bytes:
    """Shrink an ID3v2 tag that runs past ``buffer`` to the frames it holds.

    A large picture late in the tag should not hide a small one before it,
    so the header size is rewritten to end after the last complete frame.
    """
    if len(buffer) < 10:
        return buffer

    major, flags = buffer[3], buffer[5]
    declared = _unsyncsafe(buffer[6:10])
    # unsynchronised tags and extended headers are left to mutagen as-is
    if 10 + declared <= len(buffer) or major not in (2, 3, 4) or flags & 0xC0:
        return buffer

    id_size, header_size = (3, 6) if major == 2 else (4, 10)
    end = offset = 10
    while offset + header_size <= len(buffer):
        if not buffer[offset:offset + id_size].strip(b"\x00"):
            break  # padding
        raw_size = buffer[offset + id_size:offset + id_size + (3 if major == 2 else 4)]
        frame_size = _unsyncsafe(raw_size) if major == 4 else int.from_bytes(raw_size, "big")
        offset += header_size + frame_size
        if offset > len(buffer):
            break
        end = offset

    header = buffer[:5] + bytes([flags & ~0x10]) + _syncsafe(end - 10)
    return header + buffer[10:end]


def _unsyncsafe(data: bytes) -> int:
    size = 0
    for byte in data:
        size = (size << 7) | (byte & 0x7F)
    return size


def _syncsafe(size: int) -> bytes:
    return bytes((size >> shift) & 0x7F for shift in (21, 14, 7, 0))


def _first(pictures: Iterator[Thumbnail]) -> Thumbnail | None:
    return next(pictures, None)


def _pictures(audio: Any) -> Iterator[Thumbnail]:
    if isinstance(audio, FLAC):
        for picture in audio.pictures:
            yield _picture_thumbnail(picture)
        return

    tags = audio.tags
    if tags is None:
        return

    if isinstance(tags, ID3):
        yield from _id3_pictures(tags)
    elif isinstance(audio, MP4):
        for cover in tags.get("covr", []):
            yield _mp4_thumbnail(cover)
    else:
        for value in tags.get("metadata_block_picture", []):
            yield _picture_thumbnail(Picture(base64.b64decode(value)))


def _id3_pictures(tags: ID3) -> Iterator[Thumbnail]:
    for frame in tags.getall("APIC"):
        if frame.data:
            yield Thumbnail(mime_type=_normalize_mime(frame.mime), data=bytes(frame.data))


def _picture_thumbnail(picture: Picture) -> Thumbnail:
    return Thumbnail(mime_type=_normalize_mime(picture.mime), data=bytes(picture.data))


def _mp4_thumbnail(cover: MP4Cover) -> Thumbnail:
    mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else DEFAULT_IMAGE_MIME
    return Thumbnail(mime_type=mime, data=bytes(cover))


def _normalize_mime(mime: str | None) -> str:
    mime = (mime or "").strip()
    if not mime:
        return DEFAULT_IMAGE_MIME
    if "/" not in mime:
        return _SHORT_FORMATS.get(mime.upper(), DEFAULT_IMAGE_MIME)
    return mime.lower()
