"""
Blob Storage Backend

File-based storage engine for container and blob operations. Blob content
lives under ``<data_dir>/blob/<account>/<container>/<blob_name>``, one
regular file per blob, with multi-segment blob names mapped to nested
directories.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from itertools import islice
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .exceptions import (
    BlobNotFoundError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    InternalStorageError,
    InvalidNameError,
    StorageIOError,
)
from .index import NamespaceIndex
from .models import DEFAULT_CONTENT_TYPE, Blob, BlobInfo, BlobProperties

logger = logging.getLogger(__name__)

# Host separators other than '/' may not appear inside a name segment.
_FOREIGN_SEPARATORS = tuple(s for s in (os.sep, os.altsep) if s and s != "/")


class BlobStore(ABC):
    """
    Storage contract used by the blob service.

    Implementations must keep container existence consistent under
    concurrent calls and raise ``BlobStorageError`` subclasses on failure.
    """

    @abstractmethod
    async def create_container(self, account: str, container: str) -> None:
        """Create a container. Raises ContainerAlreadyExistsError if present."""

    @abstractmethod
    async def delete_container(self, account: str, container: str) -> None:
        """Delete a container and all of its blobs."""

    @abstractmethod
    async def container_exists(self, account: str, container: str) -> bool:
        """Check whether a container exists."""

    @abstractmethod
    async def put_blob(
        self,
        account: str,
        container: str,
        blob_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """Store a blob, creating the container if needed."""

    @abstractmethod
    async def get_blob(self, account: str, container: str, blob_name: str) -> Blob:
        """Retrieve a blob with its content."""

    @abstractmethod
    async def delete_blob(self, account: str, container: str, blob_name: str) -> None:
        """Remove a blob."""

    @abstractmethod
    async def list_blobs(
        self,
        account: str,
        container: str,
        prefix: str = "",
        max_results: int = 0,
    ) -> List[BlobInfo]:
        """List blobs in a container, optionally filtered and capped."""

    @abstractmethod
    async def reset(self) -> None:
        """Remove every container and blob."""


class FileBlobStore(BlobStore):
    """
    Filesystem implementation of BlobStore.

    Container existence is answered from an in-memory NamespaceIndex. Every
    directory create/remove that changes container existence happens while
    holding the index write lock, so the index and the disk never disagree.

    Content type and metadata are kept in JSON descriptors under
    ``<data_dir>/blob-properties`` mirroring the blob tree; writes are staged
    in ``<data_dir>/blob-staging`` and moved into place with ``os.replace``
    so readers never observe a partially written file.
    """

    BLOB_DIR = "blob"
    PROPERTIES_DIR = "blob-properties"
    STAGING_DIR = "blob-staging"

    def __init__(
        self,
        data_dir: str,
        persist_properties: bool = True,
        rebuild_index: bool = True,
    ):
        """
        Initialize the store, creating its directories.

        Args:
            data_dir: Base data directory
            persist_properties: Store content type and metadata in descriptors
            rebuild_index: Index container directories already on disk

        Raises:
            StorageIOError: If the storage directories cannot be created
        """
        self._data_dir = Path(data_dir)
        self._base_dir = self._data_dir / self.BLOB_DIR
        self._properties_dir = self._data_dir / self.PROPERTIES_DIR
        self._staging_dir = self._data_dir / self.STAGING_DIR
        self._persist_properties = persist_properties

        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            self._staging_dir.mkdir(parents=True, exist_ok=True)
            existing = list(self._scan_containers()) if rebuild_index else []
        except OSError as e:
            raise StorageIOError(f"failed to create blob directory: {e}") from e

        self._index = NamespaceIndex(existing)
        if existing:
            logger.info(f"Indexed {len(existing)} existing container(s) under {self._base_dir}")

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def index(self) -> NamespaceIndex:
        return self._index

    # ========== Path derivation ==========

    def _container_path(self, account: str, container: str) -> Path:
        return self._base_dir / account / container

    def _blob_path(self, account: str, container: str, blob_name: str) -> Path:
        return self._container_path(account, container).joinpath(*blob_name.split("/"))

    def _properties_path(self, account: str, container: str, blob_name: str) -> Path:
        # One flat file per blob, named by a hash of the full blob name
        digest = hashlib.sha256(blob_name.encode("utf-8")).hexdigest()
        return self._properties_dir / account / container / f"{digest}.json"

    def _scan_containers(self) -> Iterator[Tuple[str, str]]:
        """Yield (account, container) for every container directory on disk."""
        for account_dir in sorted(self._base_dir.iterdir()):
            if not account_dir.is_dir():
                continue
            for container_dir in sorted(account_dir.iterdir()):
                if container_dir.is_dir():
                    yield account_dir.name, container_dir.name

    # ========== Validation ==========

    @staticmethod
    def _validate_segment(value: str, what: str) -> None:
        if not value:
            raise InvalidNameError(f"{what} name is required")
        if (
            value in (".", "..")
            or "/" in value
            or "\x00" in value
            or any(sep in value for sep in _FOREIGN_SEPARATORS)
        ):
            raise InvalidNameError(f"invalid {what} name: {value!r}")

    @classmethod
    def _validate_container(cls, account: str, container: str) -> None:
        cls._validate_segment(account, "account")
        cls._validate_segment(container, "container")

    @classmethod
    def _validate_blob_name(cls, blob_name: str) -> None:
        """
        Validate a slash-separated blob name.

        Every segment must be a plain name so that the blob path stays
        inside its container directory.
        """
        if not blob_name:
            raise InvalidNameError("blob name is required")
        for segment in blob_name.split("/"):
            if not segment:
                raise InvalidNameError(f"invalid blob name: {blob_name!r} (empty path segment)")
            cls._validate_segment(segment, "blob")

    # ========== Container Operations ==========

    async def create_container(self, account: str, container: str) -> None:
        """
        Create a new container.

        A directory that already exists on disk is reused; only the index
        decides whether the container already exists.

        Raises:
            InvalidNameError: If a name is empty or malformed
            ContainerAlreadyExistsError: If the container is already indexed
            StorageIOError: If the directory cannot be created
        """
        self._validate_container(account, container)

        async with self._index.lock.write():
            if self._index.exists(account, container):
                raise ContainerAlreadyExistsError(account, container)

            path = self._container_path(account, container)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"failed to create container directory: {e}") from e

            self._index.mark(account, container)

        logger.debug(f"Created container {account}/{container}")

    async def delete_container(self, account: str, container: str) -> None:
        """
        Delete a container and every blob in it.

        Raises:
            InvalidNameError: If a name is empty or malformed
            ContainerNotFoundError: If the container is not indexed
            StorageIOError: If the directory tree cannot be removed
        """
        self._validate_container(account, container)

        async with self._index.lock.write():
            if not self._index.exists(account, container):
                raise ContainerNotFoundError(account, container)

            # Descriptors go first: a failure there leaves the container intact.
            self._remove_tree(self._properties_dir / account / container)
            self._remove_tree(self._container_path(account, container))

            self._index.unmark(account, container)

        logger.debug(f"Deleted container {account}/{container}")

    async def container_exists(self, account: str, container: str) -> bool:
        """Check container existence. Index lookup only, disk is not touched."""
        self._validate_container(account, container)

        async with self._index.lock.read():
            return self._index.exists(account, container)

    # ========== Blob Operations ==========

    async def put_blob(
        self,
        account: str,
        container: str,
        blob_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Store a blob, replacing any existing content and properties.

        The container is created implicitly when missing. Intermediate
        directories implied by a multi-segment name are created.

        Content is staged first and moved into place last. If that final
        move fails, the previous descriptor is put back, so a failed put
        leaves neither new content nor new properties behind.

        Raises:
            InvalidNameError: If a name is empty or malformed
            StorageIOError: If the content cannot be written
        """
        self._validate_container(account, container)
        self._validate_blob_name(blob_name)

        async with self._index.lock.write():
            if not self._index.exists(account, container):
                try:
                    self._container_path(account, container).mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise StorageIOError(f"failed to ensure container directory: {e}") from e
                self._index.mark(account, container)
                logger.info(f"Implicitly created container {account}/{container}")

            blob_path = self._blob_path(account, container, blob_name)
            try:
                blob_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"failed to create blob directory: {e}") from e

            staged = self._stage(bytes(content), "failed to write blob")
            try:
                previous: Optional[bytes] = None
                if self._persist_properties:
                    properties = BlobProperties(
                        name=blob_name,
                        content_type=content_type or DEFAULT_CONTENT_TYPE,
                        metadata=metadata or {},
                    )
                    previous = self._save_properties(account, container, blob_name, properties)

                try:
                    os.replace(staged, blob_path)
                except OSError as e:
                    if self._persist_properties:
                        self._restore_properties(account, container, blob_name, previous)
                    raise StorageIOError(f"failed to write blob: {e}") from e
            finally:
                self._discard(staged)

        logger.debug(f"Stored blob {account}/{container}/{blob_name} ({len(content)} bytes)")

    async def get_blob(self, account: str, container: str, blob_name: str) -> Blob:
        """
        Retrieve a blob with its full content.

        Raises:
            InvalidNameError: If a name is empty or malformed
            BlobNotFoundError: If no blob file exists
            StorageIOError: If the content cannot be read
            InternalStorageError: If the file metadata cannot be read
        """
        self._validate_container(account, container)
        self._validate_blob_name(blob_name)

        async with self._index.lock.read():
            blob_path = self._blob_path(account, container, blob_name)
            try:
                content = blob_path.read_bytes()
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
                raise BlobNotFoundError(container, blob_name)
            except OSError as e:
                raise StorageIOError(f"failed to read blob: {e}") from e

            try:
                stat = blob_path.stat()
            except OSError as e:
                raise InternalStorageError(f"failed to stat blob: {e}") from e

            properties = self._load_properties(account, container, blob_name)

        modified_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return Blob(
            name=blob_name,
            container=container,
            account=account,
            content=content,
            content_type=properties.content_type if properties else DEFAULT_CONTENT_TYPE,
            size=stat.st_size,
            created_at=modified_at,
            modified_at=modified_at,
            metadata=dict(properties.metadata) if properties else {},
        )

    async def delete_blob(self, account: str, container: str, blob_name: str) -> None:
        """
        Remove a blob. The container and sibling blobs are untouched.

        Raises:
            InvalidNameError: If a name is empty or malformed
            BlobNotFoundError: If no blob file exists
            StorageIOError: If the file cannot be removed
        """
        self._validate_container(account, container)
        self._validate_blob_name(blob_name)

        async with self._index.lock.write():
            blob_path = self._blob_path(account, container, blob_name)
            if not blob_path.is_file():
                raise BlobNotFoundError(container, blob_name)

            # Descriptor first: if it cannot be removed the blob stays whole
            try:
                self._properties_path(account, container, blob_name).unlink(missing_ok=True)
                blob_path.unlink()
            except FileNotFoundError:
                raise BlobNotFoundError(container, blob_name)
            except OSError as e:
                raise StorageIOError(f"failed to delete blob: {e}") from e

        logger.debug(f"Deleted blob {account}/{container}/{blob_name}")

    async def list_blobs(
        self,
        account: str,
        container: str,
        prefix: str = "",
        max_results: int = 0,
    ) -> List[BlobInfo]:
        """
        List blobs in a container.

        Args:
            account: Account name
            container: Container name
            prefix: Only return blobs whose name starts with this string
            max_results: Cap on returned entries; 0 or less means no cap

        Returns:
            Entries in ascending blob name order

        Raises:
            InvalidNameError: If a name is empty or malformed
            ContainerNotFoundError: If the container directory does not exist
            StorageIOError: If the directory walk fails
        """
        self._validate_container(account, container)

        async with self._index.lock.read():
            if not self._container_path(account, container).is_dir():
                raise ContainerNotFoundError(account, container)

            entries = self.iter_blobs(account, container, prefix)
            try:
                if max_results and max_results > 0:
                    return list(islice(entries, max_results))
                return list(entries)
            except OSError as e:
                raise StorageIOError(f"failed to list blobs: {e}") from e

    def iter_blobs(self, account: str, container: str, prefix: str = "") -> Iterator[BlobInfo]:
        """
        Lazily walk a container, yielding one entry per regular file.

        Siblings are visited with directories keyed as ``name + '/'``, which
        makes the depth-first order identical to sorting the full blob
        names. Directories that cannot contain a prefix match are skipped.
        The caller is responsible for holding the index read lock.
        """
        root = self._container_path(account, container)
        yield from self._walk(account, container, root, "", prefix)

    def _walk(
        self,
        account: str,
        container: str,
        directory: os.PathLike,
        rel: str,
        prefix: str,
    ) -> Iterator[BlobInfo]:
        children = []
        with os.scandir(directory) as it:
            for entry in it:
                name = f"{rel}{entry.name}"
                if entry.is_dir(follow_symlinks=False):
                    name += "/"
                children.append((name, entry))
        children.sort(key=lambda child: child[0])

        for name, entry in children:
            if name.endswith("/"):
                if name.startswith(prefix) or prefix.startswith(name):
                    yield from self._walk(account, container, entry.path, name, prefix)
            elif entry.is_file() and name.startswith(prefix):
                yield self._blob_info(account, container, name, entry.stat())

    def _blob_info(self, account: str, container: str, blob_name: str, stat: os.stat_result) -> BlobInfo:
        properties = self._load_properties(account, container, blob_name)
        return BlobInfo(
            name=blob_name,
            content_type=properties.content_type if properties else DEFAULT_CONTENT_TYPE,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            metadata=dict(properties.metadata) if properties else {},
        )

    # ========== Maintenance ==========

    async def reset(self) -> None:
        """Remove every container and clear the index."""
        async with self._index.lock.write():
            self._remove_tree(self._properties_dir)
            self._remove_tree(self._base_dir)
            try:
                self._base_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIOError(f"failed to recreate blob directory: {e}") from e
            self._index.clear()

        logger.info("Blob store reset")

    def stats(self) -> Dict[str, object]:
        """Summary used by health reporting."""
        return {
            "containers": len(self._index),
            "data_dir": str(self._data_dir),
            "persist_properties": self._persist_properties,
        }

    # ========== Helpers ==========

    def _stage(self, data: bytes, error_message: str) -> str:
        """Write bytes to a flushed temp file in the staging directory. Returns its path."""
        temp_path: Optional[str] = None
        try:
            self._staging_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self._staging_dir, delete=False) as f:
                temp_path = f.name
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            if temp_path is not None:
                self._discard(temp_path)
            raise StorageIOError(f"{error_message}: {e}") from e
        return temp_path

    @staticmethod
    def _discard(temp_path: str) -> None:
        """Remove a staged file that was not moved into place."""
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove staged file {temp_path}: {e}")

    def _write_atomic(self, path: Path, data: bytes, error_message: str) -> None:
        """Stage bytes, then rename them over the target."""
        staged = self._stage(data, error_message)
        try:
            os.replace(staged, path)
        except OSError as e:
            raise StorageIOError(f"{error_message}: {e}") from e
        finally:
            self._discard(staged)

    def _save_properties(
        self,
        account: str,
        container: str,
        blob_name: str,
        properties: BlobProperties,
    ) -> Optional[bytes]:
        """Write a blob's descriptor. Returns the raw descriptor it replaced, if any."""
        path = self._properties_path(account, container, blob_name)
        try:
            previous: Optional[bytes] = path.read_bytes()
        except FileNotFoundError:
            previous = None
        except OSError as e:
            raise StorageIOError(f"failed to read blob properties: {e}") from e

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"failed to create properties directory: {e}") from e
        self._write_atomic(path, properties.model_dump_json().encode("utf-8"), "failed to write blob properties")
        return previous

    def _restore_properties(
        self,
        account: str,
        container: str,
        blob_name: str,
        previous: Optional[bytes],
    ) -> None:
        """Undo ``_save_properties`` after the content could not be written."""
        path = self._properties_path(account, container, blob_name)
        try:
            if previous is None:
                path.unlink(missing_ok=True)
            else:
                self._write_atomic(path, previous, "failed to restore blob properties")
        except (OSError, StorageIOError) as e:
            logger.error(f"Failed to roll back properties for blob {blob_name}: {e}")

    def _load_properties(self, account: str, container: str, blob_name: str) -> Optional[BlobProperties]:
        """Load a blob's descriptor. Returns None when there is none."""
        if not self._persist_properties:
            return None

        path = self._properties_path(account, container, blob_name)
        try:
            raw = path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StorageIOError(f"failed to read blob properties: {e}") from e

        try:
            return BlobProperties.model_validate_json(raw)
        except ValidationError as e:
            raise InternalStorageError(f"corrupt properties for blob {blob_name}: {e}") from e

    @staticmethod
    def _remove_tree(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageIOError(f"failed to delete container directory: {e}") from e
