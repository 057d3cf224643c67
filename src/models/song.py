from __future__ import annotations

import base64
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class AudioObjectRef:
    id: str
    name: str
    mime_type: str


@dataclass(frozen=True)
class Thumbnail:
    mime_type: str
    data: bytes

    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class SongDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    mime_type: str = Field(alias="mimeType")
    thumbnail: str | None = None
    url: str


class MusicListing(BaseModel):
    files: list[SongDescriptor]
