from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OAuthSettings(BaseModel):
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    token_url: str = "https://oauth2.googleapis.com/token"
    refresh_margin: float = 60.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DRIVETUNES_",
        env_file=".env",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    environment: Literal["development", "production"] = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Public base for stream urls; Vercel exposes a bare host in VERCEL_URL.
    public_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DRIVETUNES_PUBLIC_URL", "VERCEL_URL"),
    )

    cors_origins_json: str = Field(
        default='["http://localhost:8081","http://localhost:19006",'
        '"http://localhost:3000"]'
    )

    drive_api_url: str = "https://www.googleapis.com/drive/v3"
    default_folder_id: str = "1fE94d9OkuR7IzfpjRGe6aRxg2duIgSTQ"

    # Heuristic: enough leading bytes to hold cover art in front-loaded tags.
    thumbnail_probe_bytes: int = Field(default=200_000, gt=0)
    thumbnail_concurrency: int = Field(default=8, ge=1)
    chunk_size: int = 65536

    # Seconds; unset means upstream calls never time out.
    upstream_timeout: float | None = None

    # OAuth settings (flat env vars with prefix)
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    token_url: str = "https://oauth2.googleapis.com/token"
    token_refresh_margin: float = 60.0

    def oauth(self) -> OAuthSettings:
        return OAuthSettings(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            refresh_token=self.refresh_token,
            token_url=self.token_url,
            refresh_margin=self.token_refresh_margin,
        )

    def cors_origins(self) -> list[str]:
        data: Any = json.loads(self.cors_origins_json)
        return [str(item) for item in data]

    def base_url(self) -> str | None:
        if not self.public_url:
            return None
        url = self.public_url.rstrip("/")
        if "://" not in url:
            url = f"https://{url}"
        return url
