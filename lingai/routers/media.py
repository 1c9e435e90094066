"""Public blob routes. URLs embed the full blob key, e.g. /api/audio/audio/sentences/3.mp3."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from ..errors import InvalidArgument
from ..services.container import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["media"])

CACHE_CONTROL = "public, max-age=31536000"


async def _serve(services: Services, path: str, *, prefix: str, media_type: str, label: str) -> Response:
    if not path:
        raise HTTPException(status_code=400, detail=f"{label} path is required")
    if not path.startswith(prefix):
        raise HTTPException(status_code=404, detail=f"{label} not found")
    try:
        data = await services.blobs.get(path)
    except InvalidArgument:
        raise HTTPException(status_code=400, detail=f"Invalid {label.lower()} path")
    except Exception as e:
        logger.exception("Error serving %s", path)
        raise HTTPException(status_code=500, detail=f"Failed to serve {label.lower()}: {e}")
    if data is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return Response(content=data, media_type=media_type, headers={"Cache-Control": CACHE_CONTROL})


@router.get("/audio/{path:path}")
async def serve_audio(path: str, services: Services = Depends(get_services)):
    return await _serve(services, path, prefix="audio/", media_type="audio/mpeg", label="Audio file")


@router.get("/images/{path:path}")
async def serve_image(path: str, services: Services = Depends(get_services)):
    return await _serve(services, path, prefix="images/", media_type="image/png", label="Image")


@router.get("/recap/{path:path}")
async def serve_recap(path: str, services: Services = Depends(get_services)):
    return await _serve(services, path, prefix="recap/", media_type="text/markdown", label="Recap")
