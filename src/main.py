from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.api.routes import router
from src.drive.client import DriveClient
from src.drive.credentials import GoogleCredentials
from src.logging_setup import configure_logging
from src.services.library import MusicLibrary
from src.services.proxy import StreamProxy
from src.settings import Settings


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    http: httpx.AsyncClient = fastapi_app.state.http

    if not fastapi_app.state.credentials.configured():
        logger.warning("OAuth client or refresh token missing; Drive calls will fail")
    try:
        yield
    finally:
        await http.aclose()


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Drivetunes", lifespan=lifespan)

    http = httpx.AsyncClient(
        transport=transport, timeout=httpx.Timeout(settings.upstream_timeout)
    )
    credentials = GoogleCredentials(settings=settings.oauth(), http=http)
    drive = DriveClient(http=http, api_url=settings.drive_api_url)

    app.state.settings = settings
    app.state.http = http
    app.state.credentials = credentials
    app.state.library = MusicLibrary(settings=settings, drive=drive, credentials=credentials)
    app.state.proxy = StreamProxy(
        drive=drive, credentials=credentials, chunk_size=settings.chunk_size
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


application = create_app()


def main() -> None:
    settings: Settings = application.state.settings
    if settings.environment == "production":
        # served by the hosting platform through `application`
        logger.info("Production environment, not binding a local listener")
        return

    logger.info(f"Server running at http://localhost:{settings.port}")
    uvicorn.run(application, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
