"""
Object storage integration

S3-compatible storage for lease PDFs and signed documents.
"""

from .s3 import ObjectStorageService

__all__ = ["ObjectStorageService"]
