"""
Bluestack Service Interface.

Defines the contract that service emulators implement and the registry the
edge application is built from.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter

logger = logging.getLogger(__name__)


class BluestackService(ABC):
    """
    Abstract base class for Bluestack service emulators.

    A service is mounted by the edge application under ``/<name>``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique service identifier, e.g. 'blob'."""

    @abstractmethod
    def create_router(self) -> APIRouter:
        """
        Build the service's HTTP routes.

        Paths are relative to the service mount point.
        """

    async def startup(self) -> None:
        """Called once when the edge application starts."""

    async def shutdown(self) -> None:
        """Called once when the edge application stops."""

    async def health(self) -> Dict[str, Any]:
        """Service health details."""
        return {"status": "healthy"}


class ServiceRegistry:
    """
    Ordered collection of services, built once at startup and handed to the
    edge application builder.
    """

    def __init__(self, services: Optional[List[BluestackService]] = None):
        self._services: Dict[str, BluestackService] = {}
        for service in services or []:
            self.register(service)

    def register(self, service: BluestackService) -> None:
        """
        Add a service.

        Raises:
            ValueError: If a service with the same name is already registered
        """
        if service.name in self._services:
            raise ValueError(f"Service '{service.name}' is already registered")
        self._services[service.name] = service
        logger.debug(f"Registered service: {service.name}")

    def get(self, name: str) -> Optional[BluestackService]:
        return self._services.get(name)

    def names(self) -> List[str]:
        return list(self._services)

    def __iter__(self) -> Iterator[BluestackService]:
        return iter(list(self._services.values()))

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, name: object) -> bool:
        return name in self._services
