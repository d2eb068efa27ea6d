"""
Blob store contract.

Path-addressed object storage consumed by the page cache. Implementations
are synchronous (boto3 style); async callers hop to a worker thread.

Dependencies: None
System role: Storage seam between the cache core and object storage
"""

from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(frozen=True)
class BlobInfo:
    """Listing entry; name is the full object path."""

    name: str
    size: int


class BlobStore(Protocol):
    """
    Object storage collaborator.

    Errors: get raises BlobNotFoundError for missing paths; every other
    failure surfaces as StorageError.
    """

    @property
    def is_public(self) -> bool:
        ...

    def put(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def get(self, path: str) -> bytes:
        ...

    def list(self, prefix: str) -> list[BlobInfo]:
        ...

    def remove(self, paths: Sequence[str]) -> None:
        ...

    def sign_url(self, path: str, ttl_seconds: int, force_download: bool = False) -> str:
        ...
