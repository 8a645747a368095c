"""
Bluestack Blob Storage Service

Emulates blob storage with containers and hierarchical blob names, persisted
as files on local disk.
"""

from .backend import BlobStore, FileBlobStore
from .exceptions import (
    BlobNotFoundError,
    BlobStorageError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ErrorKind,
    InternalStorageError,
    InvalidNameError,
    StorageIOError,
)
from .index import NamespaceIndex, ReadWriteLock
from .models import Blob, BlobInfo, BlobListResult, BlobProperties
from .service import BlobStorageService

__all__ = [
    "BlobStorageService",
    "BlobStore",
    "FileBlobStore",
    "NamespaceIndex",
    "ReadWriteLock",
    "Blob",
    "BlobInfo",
    "BlobListResult",
    "BlobProperties",
    "ErrorKind",
    "BlobStorageError",
    "InvalidNameError",
    "ContainerAlreadyExistsError",
    "ContainerNotFoundError",
    "BlobNotFoundError",
    "StorageIOError",
    "InternalStorageError",
]
