"""
S3 client for document and page bucket operations.

Implements the BlobStore contract over boto3: object put/get/list/remove
and presigned download URLs for the viewer.

Dependencies: boto3
System role: Object storage adapter for source documents and rendered pages
"""

import logging
import posixpath
from typing import Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from studyroom.boundary.storage.blob_store import BlobInfo
from studyroom.core.exceptions import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per call
_DELETE_BATCH_SIZE = 1000


class S3BlobStore:
    """S3 client for one bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "ap-southeast-2",
        endpoint_url: str | None = None,
        public_read: bool = False,
        max_file_size_bytes: int | None = None,
        allowed_mime_types: Sequence[str] | None = None,
    ) -> None:
        """
        Initialize S3 client for a bucket.

        Args:
            bucket: S3 bucket name
            region: AWS region for S3 bucket
            endpoint_url: Custom endpoint for S3-compatible stores
            public_read: Bucket-level public read flag
            max_file_size_bytes: Reject puts larger than this
            allowed_mime_types: Reject puts with other content types
        """
        self._bucket = bucket
        self._region = region
        self._public_read = public_read
        self._max_file_size_bytes = max_file_size_bytes
        self._allowed_mime_types = set(allowed_mime_types) if allowed_mime_types else None
        self._s3_client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def is_public(self) -> bool:
        return self._public_read

    def put(self, path: str, data: bytes, content_type: str) -> None:
        """
        Upload an object, overwriting any existing one.

        Args:
            path: Object key
            data: Object bytes
            content_type: MIME type stored with the object

        Raises:
            StorageError: Size/type limits violated or upload failed
        """
        if self._max_file_size_bytes is not None and len(data) > self._max_file_size_bytes:
            raise StorageError(
                f"Object exceeds size limit ({len(data)} > {self._max_file_size_bytes} bytes)",
                operation="put",
                path=path,
            )
        if self._allowed_mime_types is not None and content_type not in self._allowed_mime_types:
            raise StorageError(
                f"Content type '{content_type}' not allowed in bucket {self._bucket}",
                operation="put",
                path=path,
            )

        try:
            self._s3_client.put_object(
                Bucket=self._bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Upload failed: {e}", operation="put", path=path) from e

    def get(self, path: str) -> bytes:
        """
        Download an object.

        Args:
            path: Object key

        Returns:
            bytes: Object content

        Raises:
            BlobNotFoundError: Key does not exist
            StorageError: Download failed
        """
        try:
            response = self._s3_client.get_object(Bucket=self._bucket, Key=path)
            return response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise BlobNotFoundError(path) from e
            raise StorageError(f"Download failed: {e}", operation="get", path=path) from e
        except BotoCoreError as e:
            raise StorageError(f"Download failed: {e}", operation="get", path=path) from e

    def list(self, prefix: str) -> list[BlobInfo]:
        """
        List objects under a prefix.

        Args:
            prefix: Key prefix, e.g. "{owner_id}/{document_id}/"

        Returns:
            list[BlobInfo]: Full keys with sizes
        """
        entries: list[BlobInfo] = []
        try:
            paginator = self._s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    entries.append(BlobInfo(name=obj["Key"], size=obj["Size"]))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"List failed: {e}", operation="list", path=prefix) from e
        return entries

    def remove(self, paths: Sequence[str]) -> None:
        """
        Delete objects. Missing keys are not an error.

        Args:
            paths: Object keys to delete

        Raises:
            StorageError: S3 rejected the request or reported per-key errors
        """
        paths = list(paths)
        for start in range(0, len(paths), _DELETE_BATCH_SIZE):
            batch = paths[start:start + _DELETE_BATCH_SIZE]
            try:
                response = self._s3_client.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise StorageError(f"Delete failed: {e}", operation="remove") from e

            errors = response.get("Errors", [])
            if errors:
                raise StorageError(
                    f"Delete failed for {len(errors)} objects",
                    operation="remove",
                    details={"keys": [err.get("Key") for err in errors]},
                )

    def sign_url(self, path: str, ttl_seconds: int, force_download: bool = False) -> str:
        """
        Generate presigned URL for downloading/viewing an object.

        Args:
            path: Object key
            ttl_seconds: URL expiry in seconds
            force_download: Ask browsers to save instead of display

        Returns:
            str: Presigned URL

        Raises:
            StorageError: If presigned URL generation fails
        """
        params = {"Bucket": self._bucket, "Key": path}
        if force_download:
            filename = posixpath.basename(path)
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'

        try:
            return self._s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Signing failed: {e}", operation="sign_url", path=path) from e
