"""
FastAPI application for site search on OpenSearch.

Provides REST API endpoints for search, autosuggest, instant results and bulk
indexing.
"""

import logging
import sys
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from opensearchpy import OpenSearch
from opensearchpy.exceptions import TransportError

from search_api.dependencies import get_client, get_index
from search_api.routers import indexing as indexing_router
from search_api.routers import search as search_router

# Configure logging for development
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# Set specific loggers to INFO level
logging.getLogger("search_api").setLevel(logging.INFO)
logging.getLogger("enhanced_search").setLevel(logging.INFO)
logging.getLogger("enhanced_search.bulk").setLevel(logging.INFO)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Enhanced Search API",
    description="Site search with configurable strictness, fuzziness and bulk indexing on OpenSearch",
    version="0.1.0",
    root_path="/api/v1",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(search_router.router)
app.include_router(indexing_router.router)


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    logger.warning("OpenSearch request failed for %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "search backend error", "detail": str(exc)},
    )


@app.get("/health", response_model=None)
def health_check(
    client: Annotated[OpenSearch, Depends(get_client)],
    index: Annotated[str, Depends(get_index)],
) -> dict[str, str] | JSONResponse:
    """
    Health check endpoint to verify OpenSearch connectivity and the search index.
    """
    try:
        if not client.ping():
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "unhealthy",
                    "opensearch": "disconnected",
                },
            )
        if not client.indices.exists(index=index):
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "unhealthy",
                    "opensearch": "connected",
                    "error": f"index {index} does not exist",
                },
            )
        return {
            "status": "healthy",
            "opensearch": "connected",
            "index": index,
        }
    except TransportError as exc:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "error": str(exc),
            },
        )


@app.get("/")
async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.
    """
    return {
        "name": "Enhanced Search API",
        "version": "0.1.0",
        "docs": "/api/v1/docs",
        "health": "/api/v1/health",
    }
