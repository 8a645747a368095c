"""
Bluestack Core Runtime.

Builds the edge application: one FastAPI app that mounts every enabled
service under ``/<service-name>`` behind the edge middleware.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

from bluestack.gateway.middleware import EdgeMiddleware

from .config_manager import BluestackConfig
from .service import BluestackService, ServiceRegistry

logger = logging.getLogger(__name__)


def build_registry(config: BluestackConfig) -> ServiceRegistry:
    """
    Create the service registry for a configuration.

    Only enabled services are constructed, so a disabled service never
    touches the data directory. Unknown names in ``enabled_services`` are
    logged and ignored.
    """
    # Imported here so core does not depend on services at import time
    from bluestack.services.blob import BlobStorageService

    factories: Dict[str, Callable[[], BluestackService]] = {
        "blob": lambda: BlobStorageService(config.data_dir, config.blob),
    }

    registry = ServiceRegistry()
    for name in config.enabled_services:
        factory = factories.get(name)
        if factory is None:
            logger.warning(f"Unknown service in enabled_services: {name}")
            continue
        if name not in registry:
            registry.register(factory())
    return registry


def create_app(config: BluestackConfig, registry: Optional[ServiceRegistry] = None) -> FastAPI:
    """
    Create the edge FastAPI application.

    Args:
        config: Validated configuration
        registry: Services to mount; built from config when omitted

    Returns:
        Configured FastAPI app
    """
    if registry is None:
        registry = build_registry(config)

    enabled = [service for service in registry if config.is_service_enabled(service.name)]
    started_at = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        for service in enabled:
            await service.startup()
        logger.info(f"Bluestack started with {len(enabled)} service(s): {[s.name for s in enabled]}")
        try:
            yield
        finally:
            for service in reversed(enabled):
                try:
                    await service.shutdown()
                except Exception as e:
                    logger.error(f"Error stopping service '{service.name}': {e}", exc_info=True)
            logger.info("Bluestack stopped")

    app = FastAPI(
        title="Bluestack",
        description="Local Azure-style cloud service emulator",
        version=config.version,
        lifespan=lifespan,
    )
    app.add_middleware(EdgeMiddleware, request_timeout=config.server.request_timeout)

    for service in registry:
        if service in enabled:
            logger.info(f"Registering service routes: {service.name}")
            app.include_router(service.create_router(), prefix=f"/{service.name}")
        else:
            logger.info(f"Skipping service (not enabled): {service.name}")

    @app.get("/health", status_code=status.HTTP_200_OK)
    async def health_check() -> JSONResponse:
        """Health check endpoint. Always available."""
        services: Dict[str, Any] = {}
        for service in enabled:
            try:
                services[service.name] = await service.health()
            except Exception as e:
                logger.error(f"Health check failed for '{service.name}': {e}", exc_info=True)
                services[service.name] = {"status": "unhealthy", "error": str(e)}

        overall = "healthy"
        if any(s.get("status") != "healthy" for s in services.values()):
            overall = "degraded"

        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "status": overall,
                "service": "bluestack",
                "version": config.version,
                "services": services,
                "uptime": int(time.time() - started_at),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return app
