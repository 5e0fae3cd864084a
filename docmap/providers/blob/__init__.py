"""Blob providers implementing IBlobProvider."""

from docmap.providers.blob.local_blob import LocalBlobProvider

__all__ = ["LocalBlobProvider"]
