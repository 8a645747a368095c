"""
Blob Storage Exceptions

Classified exception types raised by the blob storage engine.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Machine-readable classification of engine failures."""
    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    INVALID_ARGUMENT = "InvalidArgument"
    IO_ERROR = "IOError"
    INTERNAL = "Internal"


class BlobStorageError(Exception):
    """
    Base exception for all blob storage errors.

    Attributes:
        message: Human-readable error message
        kind: Error classification used to pick a response status
        error_code: Azure-style error code (e.g. 'BlobNotFound')
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    error_code: str = "InternalError"

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.__class__.kind
        self.error_code = error_code or self.__class__.error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the error body returned by the API."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }


class InvalidNameError(BlobStorageError):
    """Raised when an account, container or blob name is empty or malformed."""
    kind = ErrorKind.INVALID_ARGUMENT
    error_code = "InvalidRequest"


class ContainerAlreadyExistsError(BlobStorageError):
    """Raised when attempting to create a container that already exists."""
    kind = ErrorKind.ALREADY_EXISTS
    error_code = "ContainerAlreadyExists"

    def __init__(self, account: str, container: str):
        super().__init__(f"container {container} already exists in account {account}")
        self.account = account
        self.container = container


class ContainerNotFoundError(BlobStorageError):
    """Raised when a container does not exist."""
    kind = ErrorKind.NOT_FOUND
    error_code = "ContainerNotFound"

    def __init__(self, account: str, container: str):
        super().__init__(f"container {container} does not exist in account {account}")
        self.account = account
        self.container = container


class BlobNotFoundError(BlobStorageError):
    """Raised when a blob does not exist."""
    kind = ErrorKind.NOT_FOUND
    error_code = "BlobNotFound"

    def __init__(self, container: str, blob_name: str):
        super().__init__(f"blob {blob_name} does not exist in container {container}")
        self.container = container
        self.blob_name = blob_name


class StorageIOError(BlobStorageError):
    """Raised when the underlying filesystem operation fails."""
    kind = ErrorKind.IO_ERROR
    error_code = "InternalError"


class InternalStorageError(BlobStorageError):
    """Raised on unexpected failures, e.g. a stat failing after a successful read."""
    kind = ErrorKind.INTERNAL
    error_code = "InternalError"
