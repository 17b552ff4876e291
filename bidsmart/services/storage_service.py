"""Storage service for Supabase storage operations."""

import asyncio
from typing import Any, Dict

import httpx

from bidsmart.core.config import settings
from bidsmart.core.exceptions import AppError
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageService:
    """Service for managing bid PDFs in Supabase storage."""

    def __init__(self):
        self.url = settings.supabase_url.rstrip("/")
        self.service_role_key = settings.supabase_service_role_key
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    async def upload_file(
        self,
        file: Any,
        bucket: str,
        path: str,
        content_type: str = "application/pdf"
    ) -> Dict[str, Any]:
        """Upload a file to Supabase storage.

        Args:
            file: An UploadFile-like object or raw bytes
            bucket: Target bucket name
            path: Target path within the bucket
            content_type: Content type sent with the object

        Returns:
            Dict containing the upload result

        Raises:
            AppError: If the upload fails
        """
        upload_url = f"{self.base_api_url}/object/{bucket}/{path}"

        if hasattr(file, "read"):
            content = file.read()
            if asyncio.iscoroutine(content):
                content = await content
        else:
            content = file

        final_content_type = getattr(file, "content_type", None) or content_type

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": final_content_type},
                    content=content,
                    timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {str(e)}", exc_info=True)
            raise AppError(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise AppError(f"Upload failed: {response.text}")

        return response.json()

    async def get_signed_url(
        self,
        bucket: str,
        path: str,
        expires_in: int = 3600
    ) -> str:
        """Generate a time-limited signed read URL for an object.

        Args:
            bucket: Bucket name
            path: Object path
            expires_in: Expiration time in seconds

        Returns:
            Absolute signed URL

        Raises:
            AppError: If URL generation fails
        """
        url = f"{self.base_api_url}/object/sign/{bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    headers=self.headers,
                    json={"expiresIn": expires_in},
                    timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {str(e)}", exc_info=True)
            raise AppError(f"Signed URL error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise AppError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise AppError("Supabase response did not contain signedURL")

        # Supabase returns a path relative to /storage/v1
        if signed_path.startswith("/"):
            if not signed_path.startswith("/storage/v1"):
                signed_path = f"/storage/v1{signed_path}"
            return f"{self.url}{signed_path}"
        return signed_path
