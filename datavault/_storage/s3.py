"""S3-compatible object storage providers (AWS S3, MinIO, GCS interoperability API)."""

import tempfile
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, BinaryIO, Dict, List, Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError, ConnectionClosedError, EndpointConnectionError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from .._utils import logger
from .base import ArtifactStat, StorageProvider

NOT_FOUND_CODES = {"NotFound", "NoSuchKey", "NoSuchBucket", "404"}

# Spool streamed artifacts to disk past this size
SPOOL_MAX_BYTES = 8 * 1024 * 1024

s3_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((EndpointConnectionError, ConnectionClosedError)),
    reraise=True,
)


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in NOT_FOUND_CODES


def normalize_prefix(prefix: Optional[str]) -> str:
    """``"/a//b/"`` -> ``"a/b/"``; empty stays empty."""
    parts = [part for part in (prefix or "").split("/") if part]
    return "/".join(parts) + "/" if parts else ""


class S3StorageProvider(StorageProvider):
    """Artifacts stored as objects under ``bucket/prefix``."""

    kind = "s3"
    supports_streaming = True

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        force_path_style: bool = False,
        auto_create: bool = False,
        server_side_encryption: Optional[str] = None,
        kms_key_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        session: Optional[Any] = None,
    ):
        if not bucket:
            raise ValueError(f"{type(self).__name__} requires a bucket")

        self.bucket = bucket
        self.prefix = normalize_prefix(prefix)
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.force_path_style = force_path_style
        self.auto_create = auto_create
        self.server_side_encryption = server_side_encryption
        self.kms_key_id = kms_key_id
        self.session = session or aioboto3.Session()
        self._ready = False

        super().__init__(provider_id or f"{self.kind}:{bucket}/{self.prefix}".rstrip("/"))

    @property
    def location(self) -> str:
        return f"{self.kind}://{self.bucket}/{self.prefix}"

    def _client(self):
        kwargs: Dict[str, Any] = {
            "region_name": self.region,
            "endpoint_url": self.endpoint_url,
        }
        if self.access_key_id and self.secret_access_key:
            kwargs["aws_access_key_id"] = self.access_key_id
            kwargs["aws_secret_access_key"] = self.secret_access_key
            if self.session_token:
                kwargs["aws_session_token"] = self.session_token
        if self.force_path_style:
            kwargs["config"] = Config(s3={"addressing_style": "path"})
        return self.session.client("s3", **kwargs)

    def _key(self, path: str) -> str:
        return f"{self.prefix}{path.lstrip('/')}"

    def _put_extra_args(self) -> Dict[str, str]:
        extra: Dict[str, str] = {}
        if self.server_side_encryption:
            extra["ServerSideEncryption"] = self.server_side_encryption
        if self.kms_key_id:
            extra["SSEKMSKeyId"] = self.kms_key_id
        return extra

    @s3_retry
    async def ensure_ready(self) -> None:
        if self._ready:
            return

        async with self._client() as s3:
            try:
                await s3.head_bucket(Bucket=self.bucket)
            except ClientError as e:
                if not (_is_not_found(e) and self.auto_create):
                    raise
                create_args: Dict[str, Any] = {"Bucket": self.bucket}
                if self.region and self.region != "us-east-1":
                    create_args["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
                await s3.create_bucket(**create_args)
                logger.info(f"Created bucket {self.bucket} for provider {self.id}")

        self._ready = True

    @s3_retry
    async def write_file(self, path: str, data: bytes) -> None:
        async with self._client() as s3:
            await s3.put_object(
                Bucket=self.bucket,
                Key=self._key(path),
                Body=data,
                **self._put_extra_args(),
            )
        logger.debug(f"Uploaded {len(data):,} bytes to {self.location}{path}")

    @s3_retry
    async def read_file(self, path: str) -> bytes:
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self.bucket, Key=self._key(path))
            except ClientError as e:
                if _is_not_found(e):
                    raise FileNotFoundError(f"Artifact not found: {path}") from e
                raise
            return await response["Body"].read()

    async def exists(self, path: str) -> bool:
        try:
            await self.stat(path)
        except FileNotFoundError:
            return False
        return True

    @s3_retry
    async def list_files(self, prefix: Optional[str] = None) -> List[str]:
        paths: List[str] = []
        request: Dict[str, Any] = {"Bucket": self.bucket}
        key_prefix = self.prefix + (prefix or "")
        if key_prefix:
            request["Prefix"] = key_prefix

        async with self._client() as s3:
            while True:
                response = await s3.list_objects_v2(**request)
                for item in response.get("Contents", []):
                    key = item["Key"]
                    if key.endswith("/"):
                        continue
                    paths.append(key[len(self.prefix):])
                if not response.get("IsTruncated"):
                    break
                request["ContinuationToken"] = response["NextContinuationToken"]

        return sorted(paths)

    @s3_retry
    async def stat(self, path: str) -> ArtifactStat:
        async with self._client() as s3:
            try:
                response = await s3.head_object(Bucket=self.bucket, Key=self._key(path))
            except ClientError as e:
                if _is_not_found(e):
                    raise FileNotFoundError(f"Artifact not found: {path}") from e
                raise
        return ArtifactStat(size=int(response.get("ContentLength", 0)))

    @s3_retry
    async def remove_file(self, path: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self.bucket, Key=self._key(path))

    @asynccontextmanager
    async def open_read_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as buffer:
            async with self._client() as s3:
                try:
                    await s3.download_fileobj(self.bucket, self._key(path), buffer)
                except ClientError as e:
                    if _is_not_found(e):
                        raise FileNotFoundError(f"Artifact not found: {path}") from e
                    raise
            buffer.seek(0)
            yield buffer

    @asynccontextmanager
    async def open_write_stream(self, path: str) -> AsyncIterator[BinaryIO]:
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as buffer:
            yield buffer
            buffer.seek(0)
            async with self._client() as s3:
                await s3.upload_fileobj(
                    buffer,
                    self.bucket,
                    self._key(path),
                    ExtraArgs=self._put_extra_args() or None,
                )


class GCSStorageProvider(S3StorageProvider):
    """Google Cloud Storage through its S3-interoperable XML API (HMAC keys)."""

    kind = "gcs"
    DEFAULT_ENDPOINT = "https://storage.googleapis.com"

    def __init__(self, bucket: str, endpoint_url: Optional[str] = None, **kwargs):
        super().__init__(bucket, endpoint_url=endpoint_url or self.DEFAULT_ENDPOINT, **kwargs)
