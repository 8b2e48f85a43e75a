# FILE: hospital_billing/services/object_storage.py
from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from hospital_billing.core.config import settings

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Resolves stored document keys (lab report PDFs) to fetchable URLs."""

    def __init__(self,
                 bucket_name: str,
                 *,
                 client=None,
                 public_base_url: str = "",
                 default_ttl: int = 3600):
        self.bucket_name = bucket_name
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.default_ttl = int(default_ttl)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY or None,
                region_name=settings.STORAGE_REGION or None,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def signed_download_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": key},
            ExpiresIn=int(expires_in or self.default_ttl),
        )

    def resolve(self, location: str) -> Optional[str]:
        """
        URL -> as is
        key -> public URL when a public base is configured, else a signed URL
        """
        loc = (location or "").strip()
        if not loc:
            return None
        if loc.startswith(("http://", "https://")):
            return loc
        key = loc.lstrip("/")
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        try:
            return self.signed_download_url(key)
        except (BotoCoreError, ClientError) as e:
            logger.warning("Could not sign storage key %s: %s", key, e)
            return None


def get_object_storage() -> ObjectStorage:
    return ObjectStorage(
        settings.STORAGE_BUCKET,
        public_base_url=settings.STORAGE_PUBLIC_BASE_URL,
        default_ttl=settings.STORAGE_SIGNED_URL_TTL,
    )
