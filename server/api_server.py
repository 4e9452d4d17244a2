"""FastAPI application entry point for the course content lifecycle service."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.cache.CacheClientInterface import CacheClientInterface
from shared.clients.catalog.CatalogClientInterface import CatalogClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.cache.CacheClientManager import CacheClientManager
from shared.clients.catalog.CatalogClientManager import CatalogClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.models.errors import (
    BackendRequestError,
    FileNotFoundInCatalogError,
    NoSourceVectorsError,
    OrganizationNotFoundError,
    QuotaExceededError,
)
from shared.storage.BlobStoreLocal import BlobStoreLocal
from shared.storage.ParseCacheLocal import ParseCacheLocal
from services.file_lifecycle.CleanupService import CleanupService
from services.file_lifecycle.LifecycleService import LifecycleService
from services.file_lifecycle.QuotaLedger import QuotaLedger
from server.routers.CourseRouter import router as course_router
from server.routers.FileRouter import router as file_router
from server.routers.MaintenanceRouter import router as maintenance_router
from server.routers.OrganizationRouter import router as organization_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

# payload fields every vector filter is built from
INDEXED_PAYLOAD_FIELDS = ["document_id", "course_id", "organization_id"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    catalog_client = CatalogClientManager(helper_config=app.state.helper_config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.helper_config).get_client()
    cache_client = CacheClientManager(helper_config=app.state.helper_config).get_client()

    logging.info("Booting all clients...")
    for client in [catalog_client, rag_client, cache_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    app.state.catalog_client = catalog_client
    app.state.rag_client = rag_client
    app.state.cache_client = cache_client

    await check_connections(catalog_client, rag_client, cache_client)
    await ensure_collection(rag_client)

    blob_store = BlobStoreLocal(helper_config=app.state.helper_config)
    app.state.quota_ledger = QuotaLedger(helper_config=app.state.helper_config, catalog_client=catalog_client)
    app.state.lifecycle_service = LifecycleService(
        helper_config=app.state.helper_config,
        catalog_client=catalog_client,
        rag_client=rag_client,
        blob_store=blob_store,
        quota_ledger=app.state.quota_ledger,
    )
    app.state.cleanup_service = CleanupService(
        helper_config=app.state.helper_config,
        catalog_client=catalog_client,
        rag_client=rag_client,
        cache_client=cache_client,
        blob_store=blob_store,
        parse_cache=ParseCacheLocal(helper_config=app.state.helper_config),
    )

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in [catalog_client, rag_client, cache_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="course_lifecycle",
    description=(
        "Content deduplication and vector lifecycle for course files. "
        "Identical uploads share stored bytes and reuse existing embeddings, "
        "deletes are reference counted, and course deletion cascades to the "
        "vector index, caches and storage."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(file_router)
app.include_router(course_router)
app.include_router(organization_router)
app.include_router(maintenance_router)


##########################################
############ ERROR MAPPING ###############
##########################################

@app.exception_handler(FileNotFoundInCatalogError)
@app.exception_handler(OrganizationNotFoundError)
async def not_found_handler(request: Request, exc: LookupError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(QuotaExceededError)
async def quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    return JSONResponse(status_code=413, content={
        "detail": str(exc),
        "organization_id": exc.organization_id,
        "storage_used_bytes": exc.used_bytes,
        "storage_quota_bytes": exc.quota_bytes,
        "requested_bytes": exc.requested_bytes,
    })


@app.exception_handler(NoSourceVectorsError)
async def no_source_vectors_handler(request: Request, exc: NoSourceVectorsError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(BackendRequestError)
async def backend_error_handler(request: Request, exc: BackendRequestError) -> JSONResponse:
    logging.error("Backend request failed: %s (%s)", exc, exc.body)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def bad_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    # InvalidIdentifierError and invalid status transitions
    return JSONResponse(status_code=400, content={"detail": str(exc)})


##########################################
############### STARTUP ##################
##########################################

async def check_connections(
    catalog_client: CatalogClientInterface,
    rag_client: RAGClientInterface,
    cache_client: CacheClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    Cache failures are non-fatal (course cleanup will report them later).
    Catalog and vector index failures are fatal, no upload or delete can
    complete without them.

    Raises:
        Exception: If the catalog or the vector index is not reachable.
    """
    if not await catalog_client.do_healthcheck():
        raise Exception(
            f"Catalog client '{catalog_client.__class__.__name__}' is not reachable. Cannot manage files."
        )

    if not await rag_client.do_healthcheck():
        raise Exception(
            f"RAG client '{rag_client.__class__.__name__}' is not reachable. Cannot manage vectors."
        )

    try:
        cache_ok = await cache_client.do_healthcheck()
    except Exception as e:
        logging.warning("Cache client '%s' health check failed: %s", cache_client.__class__.__name__, e)
        cache_ok = False
    if not cache_ok:
        logging.warning(
            "Cache client '%s' is not reachable. Course cleanup will report cache errors.",
            cache_client.__class__.__name__,
        )


async def ensure_collection(rag_client: RAGClientInterface) -> None:
    """Create the vector collection and its filter indexes if they do not exist yet."""
    if not await rag_client.do_existence_check():
        logging.info("Creating vector collection with %d dense dimensions...", rag_client.get_vector_size())
        await rag_client.do_create_collection(vector_size=rag_client.get_vector_size())
    for field in INDEXED_PAYLOAD_FIELDS:
        await rag_client.do_create_payload_index(field)


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting course_lifecycle API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", os.getcwd()),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
