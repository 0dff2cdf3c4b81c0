import logging
from pathlib import Path

from fastapi import APIRouter, Body, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from bgsort.core.config import settings
from bgsort.core.errors import BgsortError
from bgsort.services.addresses import read_image
from bgsort.services.classification import classify_image, error_result
from bgsort.services.ingestion import ingest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["gallery"])

IMAGE_CACHE_CONTROL = "public, max-age=31536000"


@router.post("/upload")
async def upload_zip(file: UploadFile | None = File(None)):
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    # the spooled upload is copied to the staging file in chunks
    result = await ingest(
        file.file,
        file.filename,
        Path(settings.storage_root),
        Path(settings.temp_dir),
    )
    return {"imageUrls": result.addresses, "extractDir": result.session_id}


@router.get("/images/{rel_path:path}")
async def get_image(rel_path: str):
    data, mime_type = read_image(rel_path, Path(settings.storage_root), decode=False)
    return Response(content=data, media_type=mime_type, headers={"Cache-Control": IMAGE_CACHE_CONTROL})


@router.post("/classify")
async def classify(request: Request, payload: dict = Body(...)):
    image_url = payload.get("imageUrl")
    if not image_url:
        return JSONResponse(status_code=400, content=error_result("Image URL required"))

    try:
        result = await classify_image(
            request.app.state.models,
            image_url,
            Path(settings.storage_root),
            settings.image_route_prefix,
        )
    except BgsortError as exc:
        logger.error("classification of %s failed: %s", image_url, exc)
        return JSONResponse(status_code=exc.status_code, content=error_result(exc.message))
    except Exception as exc:
        logger.exception("classification of %s failed", image_url)
        return JSONResponse(status_code=500, content=error_result(str(exc) or "Classification failed"))
    return result.to_dict()


async def bgsort_error_handler(request: Request, exc: BgsortError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind})
