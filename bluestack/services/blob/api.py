"""
Blob Storage API Endpoints

FastAPI routes translating HTTP requests into blob store calls. Routes are
relative to the service mount point (``/blob`` on the edge application):

    PUT    /{account}/{container}              create container
    DELETE /{account}/{container}              delete container
    GET    /{account}/{container}              list blobs
    PUT    /{account}/{container}/{blob_name}  upload blob
    GET    /{account}/{container}/{blob_name}  download blob
    DELETE /{account}/{container}/{blob_name}  delete blob
"""

import logging
from email.utils import format_datetime
from typing import Dict, Optional

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from bluestack.core.logging_config import log_with_context

from .backend import BlobStore
from .exceptions import BlobStorageError, ErrorKind
from .models import (
    DEFAULT_CONTENT_TYPE,
    BlobListResult,
    metadata_from_headers,
    metadata_to_headers,
)

logger = logging.getLogger(__name__)


ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.IO_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Messages returned instead of the engine detail for server-side failures
_INTERNAL_MESSAGES = {
    "create_container": "Failed to create container",
    "delete_container": "Failed to delete container",
    "list_blobs": "Failed to list blobs",
    "put_blob": "Failed to upload blob",
    "get_blob": "Failed to retrieve blob",
    "delete_blob": "Failed to delete blob",
}


def _parse_max_results(value: Optional[str]) -> int:
    """Missing, non-numeric or non-positive values mean no limit."""
    if not value:
        return 0
    try:
        parsed = int(value)
    except ValueError:
        return 0
    return parsed if parsed > 0 else 0


def _error_response(operation: str, exc: BlobStorageError, **context: str) -> JSONResponse:
    """
    Build the JSON error response for an engine failure.

    Server-side kinds are logged with their detail and reported to the
    client with a generic message.
    """
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if status_code >= 500:
        log_with_context(
            logger,
            logging.ERROR,
            f"{operation} failed: {exc.message}",
            kind=exc.kind.value,
            **context,
        )
        body = {"error": {"code": exc.error_code, "message": _INTERNAL_MESSAGES[operation]}}
    else:
        log_with_context(
            logger,
            logging.DEBUG,
            f"{operation} rejected: {exc.message}",
            kind=exc.kind.value,
            **context,
        )
        body = exc.to_dict()

    return JSONResponse(status_code=status_code, content=body)


def create_router(store: BlobStore) -> APIRouter:
    """
    Create the router for blob storage endpoints.

    Args:
        store: Blob store every route delegates to

    Returns:
        Configured APIRouter
    """
    router = APIRouter(tags=["blob-storage"])

    @router.put(
        "/{account_name}/{container_name}",
        status_code=status.HTTP_201_CREATED,
        summary="Create Container",
    )
    async def create_container(account_name: str, container_name: str) -> Response:
        """
        Create a container.

        Returns:
            201 Created

        Raises:
            400 Bad Request: Invalid name
            409 Conflict: Container already exists
        """
        try:
            await store.create_container(account_name, container_name)
        except BlobStorageError as e:
            return _error_response("create_container", e, account=account_name, container=container_name)

        log_with_context(logger, logging.INFO, "container created", account=account_name, container=container_name)
        return PlainTextResponse(
            f"Container {container_name} created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    @router.delete(
        "/{account_name}/{container_name}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete Container",
    )
    async def delete_container(account_name: str, container_name: str) -> Response:
        """
        Delete a container and all of its blobs.

        Returns:
            204 No Content

        Raises:
            404 Not Found: Container not found
        """
        try:
            await store.delete_container(account_name, container_name)
        except BlobStorageError as e:
            return _error_response("delete_container", e, account=account_name, container=container_name)

        log_with_context(logger, logging.INFO, "container deleted", account=account_name, container=container_name)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get(
        "/{account_name}/{container_name}",
        status_code=status.HTTP_200_OK,
        summary="List Blobs",
    )
    async def list_blobs(
        account_name: str,
        container_name: str,
        prefix: str = Query(""),
        maxresults: Optional[str] = Query(None),
    ) -> Response:
        """
        List blobs in a container.

        Args:
            prefix: Blob name prefix filter
            maxresults: Maximum number of entries; ignored unless a positive integer

        Returns:
            200 OK with {"Blobs": [...], "Prefix": ..., "MaxResults": ...}

        Raises:
            404 Not Found: Container not found
        """
        max_results = _parse_max_results(maxresults)
        try:
            blobs = await store.list_blobs(account_name, container_name, prefix, max_results)
        except BlobStorageError as e:
            return _error_response("list_blobs", e, account=account_name, container=container_name)

        result = BlobListResult(blobs=blobs, prefix=prefix, max_results=max_results)
        return JSONResponse(content=result.to_dict())

    @router.put(
        "/{account_name}/{container_name}/{blob_name:path}",
        status_code=status.HTTP_201_CREATED,
        summary="Put Blob",
    )
    async def put_blob(
        account_name: str,
        container_name: str,
        blob_name: str,
        request: Request,
    ) -> Response:
        """
        Upload a blob. The request body is stored as-is.

        Content type comes from the Content-Type header and metadata from
        x-ms-meta-* headers. A missing container is created.

        Returns:
            201 Created
        """
        content = await request.body()
        content_type = request.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        metadata = metadata_from_headers(request.headers)

        try:
            await store.put_blob(
                account_name,
                container_name,
                blob_name,
                content,
                content_type=content_type,
                metadata=metadata,
            )
        except BlobStorageError as e:
            return _error_response(
                "put_blob", e, account=account_name, container=container_name, blob=blob_name
            )

        log_with_context(
            logger,
            logging.INFO,
            "blob uploaded",
            account=account_name,
            container=container_name,
            blob=blob_name,
            size=len(content),
        )
        return PlainTextResponse(
            f"Blob {blob_name} uploaded successfully",
            status_code=status.HTTP_201_CREATED,
        )

    @router.get(
        "/{account_name}/{container_name}/{blob_name:path}",
        status_code=status.HTTP_200_OK,
        summary="Get Blob",
    )
    async def get_blob(account_name: str, container_name: str, blob_name: str) -> Response:
        """
        Download a blob.

        Returns:
            200 OK with the raw content, Content-Type, Last-Modified and
            x-ms-meta-* headers

        Raises:
            404 Not Found: Blob not found
        """
        try:
            blob = await store.get_blob(account_name, container_name, blob_name)
        except BlobStorageError as e:
            return _error_response(
                "get_blob", e, account=account_name, container=container_name, blob=blob_name
            )

        headers = {
            "content-type": blob.content_type,
            "last-modified": format_datetime(blob.modified_at, usegmt=True),
        }
        headers.update(metadata_to_headers(blob.metadata))

        log_with_context(
            logger,
            logging.INFO,
            "blob downloaded",
            account=account_name,
            container=container_name,
            blob=blob_name,
            size=blob.size,
        )
        return Response(content=blob.content, status_code=status.HTTP_200_OK, headers=headers)

    @router.delete(
        "/{account_name}/{container_name}/{blob_name:path}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete Blob",
    )
    async def delete_blob(account_name: str, container_name: str, blob_name: str) -> Response:
        """
        Delete a blob.

        Returns:
            204 No Content

        Raises:
            404 Not Found: Blob not found
        """
        try:
            await store.delete_blob(account_name, container_name, blob_name)
        except BlobStorageError as e:
            return _error_response(
                "delete_blob", e, account=account_name, container=container_name, blob=blob_name
            )

        log_with_context(
            logger,
            logging.INFO,
            "blob deleted",
            account=account_name,
            container=container_name,
            blob=blob_name,
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/reset", status_code=status.HTTP_200_OK, summary="Reset Blob Store")
    async def reset_store() -> Response:
        """Remove every container. Intended for test setups."""
        try:
            await store.reset()
        except BlobStorageError as e:
            log_with_context(logger, logging.ERROR, f"reset failed: {e.message}", kind=e.kind.value)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": {"code": e.error_code, "message": "Failed to reset blob store"}},
            )
        return JSONResponse(content={"message": "Blob store reset successfully"})

    return router
