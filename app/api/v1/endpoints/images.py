import base64
import logging
from typing import Optional

import requests
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_http_session
from app.core.config import HTTP_TIMEOUT

logger = logging.getLogger("fleet.images")
router = APIRouter()

def fetch_image(http: requests.Session, url: str) -> requests.Response:
    return http.get(url, timeout=HTTP_TIMEOUT)

def to_data_uri(response: requests.Response) -> str:
    content_type = response.headers.get("Content-Type", "application/octet-stream").split(";")[0]
    encoded = base64.b64encode(response.content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"

def embed_image(http: requests.Session, url: Optional[str]) -> Optional[str]:
    """Data URI for `url`, or None when there is no image or it cannot be fetched."""
    if not url:
        return None
    try:
        response = fetch_image(http, url)
    except Exception as e:
        logger.error(f"Error embedding image {url}: {e}")
        return None
    if not response.ok:
        logger.warning(f"Image {url} answered {response.status_code}")
        return None
    return to_data_uri(response)

@router.get("/image-proxy")
async def image_proxy(url: Optional[str] = None, http: requests.Session = Depends(get_http_session)):
    """
    Fetches an image server-side and returns it as a base64 data URI,
    so inspection reports can embed storage images without CORS trouble.
    """
    if not url:
        return JSONResponse({"error": "URL parameter is required"}, status_code=400)

    try:
        response = await run_in_threadpool(fetch_image, http, url)
        if not response.ok:
            return JSONResponse({"error": "Failed to fetch image"}, status_code=response.status_code)
        return {"base64": to_data_uri(response)}
    except Exception as e:
        logger.error(f"Error in image proxy: {e}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
