# finverno/services/storage.py
import asyncio
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from finverno.config import settings

logger = structlog.get_logger()


def object_key(bucket: str, ref: Optional[str]) -> Optional[str]:
    """Accept a bare key or a stored object URL and return the key within the bucket."""
    if not ref:
        return None
    if ref.startswith(("http://", "https://")):
        path = urlparse(ref).path.lstrip("/")
        prefix = f"{bucket}/"
        return path[len(prefix):] if path.startswith(prefix) else path or None
    return ref


class R2Client:
    """Presigned GET URLs for files kept in R2. Uploads happen client-side."""

    def __init__(self):
        self._s3 = None

    @property
    def s3(self):
        # Built on first use so the app starts without R2 credentials.
        if self._s3 is None:
            self._s3 = boto3.client(
                "s3",
                endpoint_url=settings.R2_ENDPOINT_URL or None,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY or None,
                config=Config(signature_version="s3v4"),
                region_name="auto",
            )
        return self._s3

    def get_presigned_url(self, bucket: str, key: str, expires_in: Optional[int] = None) -> str:
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_in or settings.SIGNED_URL_TTL_SECONDS,
        )

    async def signed_url(self, bucket: str, key: Optional[str]) -> Optional[str]:
        """Presign off the event loop; a missing key or signing failure yields None."""
        key = object_key(bucket, key)
        if not key:
            return None
        try:
            return await asyncio.to_thread(self.get_presigned_url, bucket, key)
        except (BotoCoreError, ClientError) as e:
            logger.warning("r2_presign_failed", bucket=bucket, key=key, error=str(e))
            return None

    async def signed_urls(self, bucket: str, keys: list[Optional[str]]) -> list[Optional[str]]:
        return list(await asyncio.gather(*(self.signed_url(bucket, key) for key in keys)))


r2_client = R2Client()


def get_storage() -> R2Client:
    return r2_client
