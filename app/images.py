# FILE: app/images.py
# ==============================================================================
# Listing photo optimisation. The upload is parked in storage under temp/, the
# resize proxy turns it into a 1200px WebP, and only the WebP is kept.
# ==============================================================================
import base64
import binascii
import logging
import time
import uuid
from typing import Optional
from urllib.parse import quote

import httpx

from . import config
from .errors import ConfigurationError, UpstreamError, ValidationError
from .schemas import ImageOptimizeResult
from .security import Identity, ensure_user

TARGET_WIDTH = 1200
WEBP_QUALITY = 80


class StorageClient:
    """Minimal object-storage REST client, authenticated with the service key."""

    def __init__(self, base_url: str = config.SUPABASE_URL, service_key: str = config.SUPABASE_SERVICE_ROLE_KEY,
                 bucket: str = config.STORAGE_BUCKET, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not base_url or not service_key:
            raise ConfigurationError("Storage is not configured")
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}
        self.transport = transport

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, client: httpx.AsyncClient, path: str, content: bytes, content_type: str,
                     upsert: bool = False) -> str:
        response = await client.post(
            f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
            content=content,
            headers={**self.headers, "Content-Type": content_type, "x-upsert": "true" if upsert else "false"},
        )
        if response.status_code >= 400:
            raise UpstreamError(f"Failed to upload image: {response.status_code} {response.text[:200]}")
        return path

    async def remove(self, client: httpx.AsyncClient, path: str) -> None:
        response = await client.request(
            "DELETE",
            f"{self.base_url}/storage/v1/object/{self.bucket}",
            json={"prefixes": [path]},
            headers=self.headers,
        )
        if response.status_code >= 400:
            raise UpstreamError(f"Failed to remove {path}: {response.status_code}")


def decode_image(image_base64: str) -> bytes:
    # Accepts both bare base64 and data URLs.
    data = image_base64.split(",", 1)[1] if "," in image_base64 else image_base64
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid image data")


def _object_name(prefix: str, extension: str) -> str:
    return f"{prefix}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}.{extension}"


def proxy_url(source_url: str) -> str:
    return (
        f"{config.IMAGE_PROXY_URL}?url={quote(source_url, safe='')}"
        f"&w={TARGET_WIDTH}&output=webp&q={WEBP_QUALITY}"
    )


async def optimize_image(identity: Optional[Identity], image_base64: str, file_name: str,
                         mime_type: Optional[str] = None, storage: Optional[StorageClient] = None,
                         transport: Optional[httpx.AsyncBaseTransport] = None) -> ImageOptimizeResult:
    identity = ensure_user(identity)
    if not image_base64 or not file_name:
        raise ValidationError("Missing required fields: imageBase64, fileName")

    original = decode_image(image_base64)
    if not original:
        raise ValidationError("Invalid image data")
    storage = storage or StorageClient(transport=transport)
    logging.info(f"IMAGES: Processing '{file_name}' ({len(original)} bytes) for user {identity.user_id}.")

    temp_path = _object_name(f"temp/{identity.user_id}", "tmp")
    async with httpx.AsyncClient(timeout=30.0, transport=transport, follow_redirects=True) as client:
        await storage.upload(client, temp_path, original, mime_type or "image/jpeg", upsert=True)
        try:
            try:
                response = await client.get(proxy_url(storage.public_url(temp_path)))
            except httpx.HTTPError as e:
                raise UpstreamError(f"Image optimization failed: {e}")
            if response.status_code >= 400:
                raise UpstreamError(f"Image optimization failed: {response.status_code}")
            optimized = response.content

            final_path = _object_name(identity.user_id, "webp")
            await storage.upload(client, final_path, optimized, "image/webp")
        finally:
            try:
                await storage.remove(client, temp_path)
            except (UpstreamError, httpx.HTTPError) as e:
                logging.error(f"IMAGES: Failed to clean up temp file {temp_path}: {e}")

    reduction = round((1 - len(optimized) / len(original)) * 100)
    logging.info(f"IMAGES: Stored {final_path} ({len(optimized)} bytes, {reduction}% reduction).")
    return ImageOptimizeResult(
        public_url=storage.public_url(final_path),
        original_size=len(original),
        optimized_size=len(optimized),
        reduction=reduction,
    )
