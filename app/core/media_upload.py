"""
Media upload — step screenshots and recordings go to Cloudinary.

Uses an unsigned upload preset, so no API secret lives on the server.
When Cloudinary is not configured or the upload fails, the blob comes back
inline as a data: URL so the editor can keep working.
"""

import base64

import httpx

from app.config import get_settings

import structlog

logger = structlog.get_logger()

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"


def to_data_url(data: bytes, content_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type or 'application/octet-stream'};base64,{encoded}"


async def upload_media(
    data: bytes,
    content_type: str,
    folder: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Upload a blob and return a durable URL, or an inline data: URL on failure."""
    settings = get_settings()
    if not settings.cloudinary_cloud_name:
        return to_data_url(data, content_type)

    url = CLOUDINARY_UPLOAD_URL.format(cloud_name=settings.cloudinary_cloud_name)
    form = {
        "upload_preset": settings.cloudinary_upload_preset,
        "folder": folder or settings.media_folder,
    }
    files = {"file": ("upload", data, content_type or "application/octet-stream")}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=30.0) as own_client:
                resp = await own_client.post(url, data=form, files=files)
        else:
            resp = await client.post(url, data=form, files=files)
        resp.raise_for_status()
        payload = resp.json()
        if payload.get("error"):
            raise ValueError(payload["error"].get("message", "upload rejected"))
        secure_url = payload["secure_url"]
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        logger.warning("media_upload_failed", size=len(data), error=str(exc))
        return to_data_url(data, content_type)

    logger.info("media_uploaded", size=len(data), url=secure_url)
    return secure_url
