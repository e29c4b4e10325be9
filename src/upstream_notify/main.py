"""FastAPI application exposing recipient collection over HTTP.

Endpoints:
- POST /recipients - Collect upstream committers for a build in a snapshot
- GET /health - Health check for load balancers and monitoring
- Automatic OpenAPI/Swagger documentation at /docs

Architecture notes:
- FastAPI handles HTTP concerns (routing, validation, serialization)
- The provider handles the collection; the API only builds its inputs
- The resolver is built once at startup from the YAML configuration

To run locally:
    uvicorn upstream_notify.main:app --reload --port 8000
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from upstream_notify import __version__
from upstream_notify.config import load_config
from upstream_notify.debug import LoggerDebugSink, NullDebugSink
from upstream_notify.history.store import InMemoryBuildHistory
from upstream_notify.logging_config import get_logger, setup_logging
from upstream_notify.provider import collect_recipients
from upstream_notify.resolver import DirectoryResolver
from upstream_notify.schemas import BuildRef, RecipientRequest, RecipientResponse

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application Lifespan (startup/shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load configuration and build the resolver once at startup."""
    setup_logging()
    config = load_config()
    app.state.config = config
    app.state.resolver = DirectoryResolver(config.resolver)
    logger.info("service_started", debug_mode=config.debug_mode)
    yield


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Upstream Notify",
    description="Upstream committers since the last successful build",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.time()
        response = await call_next(request)
        duration = time.time() - start
        response.headers["X-Process-Time"] = f"{duration:.2f}s"
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 4),
        )
        return response


app.add_middleware(TimingMiddleware)


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Invalid snapshots or configuration become 422 responses."""
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/recipients", response_model=RecipientResponse)
async def recipients(body: RecipientRequest, request: Request) -> RecipientResponse:
    """Collect upstream committers for the build named in the request.

    Args:
        body: The current build and the history snapshot to search
        request: The incoming HTTP request (for accessing app state)

    Returns:
        Sorted to/cc/bcc lists and the upstream builds found

    Raises:
        HTTPException: 404 if the current build is not in the snapshot
    """
    config = getattr(request.app.state, "config", None)
    resolver = getattr(request.app.state, "resolver", None) or DirectoryResolver()
    debug = LoggerDebugSink() if config is not None and config.debug_mode else NullDebugSink()

    history = InMemoryBuildHistory.from_snapshot(body.history)
    ref = BuildRef(job=body.job, number=body.number)
    try:
        found, upstream = collect_recipients(
            history, ref, resolver=resolver, env=body.env, debug=debug
        )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))

    return RecipientResponse.from_result(found, upstream)
