from __future__ import annotations

import boto3
from botocore.config import Config
from loguru import logger

from pfcollect.config import Settings, load_settings

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"


class SpacesStorage:
    """Public-read uploads to an S3-compatible bucket (DigitalOcean Spaces)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        cdn_base_url: str | None = None,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.cdn_base_url = cdn_base_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SpacesStorage":
        s = settings or load_settings()
        return cls(
            bucket=s.s3_bucket,
            endpoint_url=s.s3_endpoint,
            region=s.s3_region,
            access_key=s.aws_access.get_secret_value() if s.aws_access is not None else None,
            secret_key=s.aws_secret.get_secret_value() if s.aws_secret is not None else None,
            cdn_base_url=s.cdn_base_url,
        )

    @property
    def client(self):
        if self._client is None:
            config = Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
            )
            kwargs = {
                "service_name": "s3",
                "region_name": self.region,
                "aws_access_key_id": self._access_key,
                "aws_secret_access_key": self._secret_key,
                "config": config,
            }
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
            self._client = boto3.client(**kwargs)
        return self._client

    def public_url(self, key: str) -> str:
        if self.cdn_base_url:
            return f"{self.cdn_base_url.rstrip('/')}/{key}"
        return f"{(self.endpoint_url or '').rstrip('/')}/{self.bucket}/{key}"

    def upload(
        self,
        key: str,
        body: bytes,
        content_type: str,
        cache_control: str | None = None,
        acl: str = "public-read",
    ) -> str:
        """Put one object and return its public URL. botocore errors propagate."""
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
            "ACL": acl,
        }
        if cache_control:
            params["CacheControl"] = cache_control
        self.client.put_object(**params)
        logger.debug("uploaded {} ({} bytes)", key, len(body))
        return self.public_url(key)
