"""
Blob Storage Service

Wires the file-based blob store and its HTTP routes into a Bluestack service.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter

from bluestack.core.config_manager import BlobServiceConfig
from bluestack.core.service import BluestackService

from .api import create_router
from .backend import FileBlobStore


class BlobStorageService(BluestackService):
    """Blob storage emulator backed by files under ``<data_dir>/blob``."""

    def __init__(self, data_dir: str, config: Optional[BlobServiceConfig] = None):
        config = config or BlobServiceConfig()
        self._store = FileBlobStore(
            data_dir,
            persist_properties=config.persist_properties,
            rebuild_index=config.rebuild_index,
        )

    @property
    def name(self) -> str:
        return "blob"

    @property
    def store(self) -> FileBlobStore:
        return self._store

    def create_router(self) -> APIRouter:
        return create_router(self._store)

    async def health(self) -> Dict[str, Any]:
        return {"status": "healthy", **self._store.stats()}
