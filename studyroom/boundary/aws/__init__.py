"""
AWS boundary modules.

Exports: S3BlobStore
"""

from .s3_client import S3BlobStore

__all__ = ["S3BlobStore"]
