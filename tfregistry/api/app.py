"""Terraform registry HTTP surface (modules.v1 and providers.v1).

Endpoints:
    GET /health
    GET /.well-known/terraform.json                                         - service discovery
    GET /terraform/modules/v1/{org}/{name}/{provider}/versions              - version list
    GET /terraform/modules/v1/{org}/{name}/{provider}/{version}/download    - 204 + X-Terraform-Get
    GET /terraform/modules/v1/download/{org}/{name}/{provider}/{version}/module.zip
    GET /terraform/providers/v1/{org}/{provider}/versions
    GET /terraform/providers/v1/{org}/{provider}/{version}/download/{os}/{arch}

Routes are plain ``def`` functions run in FastAPI's threadpool, except the
module download: it pushes materialization to the threadpool itself and
watches for the client disconnecting meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import Any, BinaryIO

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from tfregistry import __version__
from tfregistry.client.metadata import MetadataClient, MetadataNotFound, MetadataQueryFailed
from tfregistry.config import RegistryConfig
from tfregistry.core.cache import MaterializationCache, MaterializationError
from tfregistry.core.context import CancelScope
from tfregistry.core.keys import ARCHIVE_CONTENT_TYPE
from tfregistry.models.coordinates import ModuleCoordinate, check_segment
from tfregistry.storage import ObjectNotFound
from tfregistry.storage.factory import build_object_store

logger = logging.getLogger(__name__)

DISCOVERY = {
    "modules.v1": "/terraform/modules/v1/",
    "providers.v1": "/terraform/providers/v1/",
}

_CHUNK_SIZE = 1 << 16
DISCONNECT_POLL_SECONDS = 0.5

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_config(request: Request) -> RegistryConfig:
    return request.app.state.config


def get_cache(request: Request) -> MaterializationCache:
    return request.app.state.cache


def get_metadata(request: Request) -> MetadataClient:
    return request.app.state.metadata


def _coordinate(organization: str, name: str, provider: str, version: str) -> ModuleCoordinate:
    try:
        return ModuleCoordinate(
            organization=organization, name=name, provider=provider, version=version
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _segments(**values: str) -> None:
    try:
        for field, value in values.items():
            check_segment(value, field)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    try:
        while True:
            chunk = stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


async def _cancel_on_disconnect(request: Request, scope: CancelScope) -> None:
    """Cancel *scope* as soon as the client of *request* disconnects."""
    while not scope.cancelled:
        if await request.is_disconnected():
            logger.info("client disconnected from %s, cancelling", request.url.path)
            scope.cancel("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "UP"}


@router.get("/.well-known/terraform.json")
def discovery() -> dict[str, str]:
    return DISCOVERY


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


@router.get("/terraform/modules/v1/{organization}/{name}/{provider}/versions")
def module_versions(
    organization: str,
    name: str,
    provider: str,
    metadata: MetadataClient = Depends(get_metadata),
) -> dict[str, Any]:
    """List the versions of a module in the modules.v1 response shape."""
    _segments(organization=organization, name=name, provider=provider)
    versions = metadata.get_module_versions(organization, name, provider)
    return {"modules": [{"versions": [{"version": v} for v in versions]}]}


@router.get("/terraform/modules/v1/{organization}/{name}/{provider}/{version}/download")
async def module_download(
    request: Request,
    organization: str,
    name: str,
    provider: str,
    version: str,
    config: RegistryConfig = Depends(get_config),
    cache: MaterializationCache = Depends(get_cache),
    metadata: MetadataClient = Depends(get_metadata),
) -> Response:
    """Materialize the module archive if needed and point Terraform at it.

    Returns 204 with the archive's public path in ``X-Terraform-Get``. The
    first request for a version clones and packs it, so it can take a while;
    the work runs in the threadpool and is cancelled if the client goes away.
    """
    coordinate = _coordinate(organization, name, provider, version)
    details = await run_in_threadpool(metadata.get_module, organization, name, provider)
    source = details.to_source_descriptor()

    scope = CancelScope(config.materialize_timeout_seconds)
    watcher = asyncio.create_task(_cancel_on_disconnect(request, scope))
    try:
        path = await run_in_threadpool(cache.materialize, coordinate, source, scope=scope)
    finally:
        watcher.cancel()

    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={"X-Terraform-Get": path},
    )


@router.get("/terraform/modules/v1/download/{organization}/{name}/{provider}/{version}/module.zip")
def module_archive(
    organization: str,
    name: str,
    provider: str,
    version: str,
    cache: MaterializationCache = Depends(get_cache),
) -> StreamingResponse:
    """Stream a materialized archive out of the object store."""
    coordinate = _coordinate(organization, name, provider, version)
    stream = cache.download(coordinate)
    return StreamingResponse(
        _iter_stream(stream),
        media_type=ARCHIVE_CONTENT_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{coordinate.archive_filename}"'
        },
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@router.get("/terraform/providers/v1/{organization}/{provider}/versions")
def provider_versions(
    organization: str,
    provider: str,
    metadata: MetadataClient = Depends(get_metadata),
) -> dict[str, Any]:
    _segments(organization=organization, provider=provider)
    versions = metadata.get_provider_versions(organization, provider)
    return {"versions": [v.model_dump(mode="json") for v in versions]}


@router.get("/terraform/providers/v1/{organization}/{provider}/{version}/download/{os}/{arch}")
def provider_download(
    organization: str,
    provider: str,
    version: str,
    os: str,
    arch: str,
    metadata: MetadataClient = Depends(get_metadata),
) -> dict[str, Any]:
    _segments(organization=organization, provider=provider, version=version, os=os, arch=arch)
    return metadata.get_provider_file(organization, provider, version, os, arch).model_dump(
        mode="json"
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _not_found(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


def _bad_gateway(request: Request, exc: Exception) -> JSONResponse:
    logger.error("metadata query failed for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"error": str(exc)})


def _materialization_failed(request: Request, exc: MaterializationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc), "stage": exc.stage.value},
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    config: RegistryConfig | None = None,
    *,
    cache: MaterializationCache | None = None,
    metadata: MetadataClient | None = None,
) -> FastAPI:
    """Build the registry application.

    Parameters
    ----------
    config:
        Process configuration; the module-level ``config`` singleton when
        omitted.
    cache, metadata:
        Collaborators to use instead of the ones built from *config*.

    Raises
    ------
    StorageConfigError
        If *cache* is omitted and the storage settings are unusable.
    """
    if config is None:
        from tfregistry.config import config as default_config

        config = default_config

    if cache is None:
        cache = MaterializationCache.from_config(config, build_object_store(config))
    if metadata is None:
        metadata = MetadataClient.from_config(config)

    app = FastAPI(title="tfregistry", version=__version__)
    app.state.config = config
    app.state.cache = cache
    app.state.metadata = metadata

    app.add_exception_handler(MetadataNotFound, _not_found)
    app.add_exception_handler(ObjectNotFound, _not_found)
    app.add_exception_handler(MetadataQueryFailed, _bad_gateway)
    app.add_exception_handler(MaterializationError, _materialization_failed)
    app.include_router(router)

    logger.info(
        "registry app ready: hostname=%s storage=%s metadata=%s",
        config.hostname,
        cache.store.backend,
        config.api_url,
    )
    return app
