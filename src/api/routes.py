from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from src.errors import ClientInputError, UpstreamListError
from src.models.song import MusicListing

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/music", response_model=MusicListing)
async def music(
    request: Request, folder_id: str | None = Query(default=None, alias="folderId")
) -> Response:
    library = request.app.state.library
    settings = request.app.state.settings

    folder_id = folder_id or settings.default_folder_id
    base_url = settings.base_url() or str(request.base_url)

    try:
        songs = await library.list_songs(folder_id, base_url)
    except UpstreamListError as exc:
        return Response(
            content=exc.body,
            status_code=exc.status,
            media_type=exc.content_type,
        )
    except Exception as exc:
        logger.exception("/api/music error")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch songs", "details": str(exc)},
        )

    listing = MusicListing(files=songs)
    return JSONResponse(content=listing.model_dump(by_alias=True))


@router.get("/proxy")
async def proxy(
    request: Request, file_id: str | None = Query(default=None, alias="fileId")
) -> Response:
    try:
        if not file_id:
            raise ClientInputError("Missing fileId")
        return await request.app.state.proxy.stream(
            file_id, range_header=request.headers.get("range")
        )
    except ClientInputError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except Exception as exc:
        logger.exception("Proxy error")
        return JSONResponse(
            status_code=500,
            content={"error": "Proxy failed", "details": str(exc)},
        )


@router.get("/thumbnail/{file_id}")
async def thumbnail(request: Request, file_id: str) -> Response:
    try:
        thumb = await request.app.state.library.thumbnail(file_id)
    except Exception:
        logger.exception("Thumbnail route error")
        return PlainTextResponse("Failed to load thumbnail", status_code=500)

    if thumb is None:
        return PlainTextResponse("No thumbnail found", status_code=404)
    return Response(content=thumb.data, media_type=thumb.mime_type)
