"""
Blob store contract.

Exports: BlobStore, BlobInfo
"""

from .blob_store import BlobInfo, BlobStore

__all__ = ["BlobInfo", "BlobStore"]
