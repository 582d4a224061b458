"""RoastTemp server entry point.

Wires logging, the analysis service lifecycle, request tracking and CORS
around the analysis router.
"""

from contextlib import asynccontextmanager
import os
import tempfile
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import AnalysisConfig, LOG_DIR, config
from logging_config import setup_logging
from services.analysis_service import AnalysisService


def _init_logging():
    try:
        return setup_logging(log_dir=str(LOG_DIR), log_level=config.LOG_LEVEL)
    except OSError as e:
        # Read-only or missing volume (local runs, CI): log to a scratch dir
        fallback = tempfile.mkdtemp(prefix="roasttemp-logs-")
        fallback_logger = setup_logging(log_dir=fallback, log_level=config.LOG_LEVEL)
        fallback_logger.warning(
            f"Cannot write logs to {LOG_DIR}, falling back to {fallback}",
            extra={"original_error": str(e)}
        )
        return fallback_logger


logger = _init_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the analysis service on startup and release its HTTP pool on shutdown."""
    analysis_config = AnalysisConfig.from_env()
    if not analysis_config.api_key:
        logger.warning("ABACUS_API_KEY is not set; /api/analyze will fail until it is configured")
    if getattr(app.state, "analysis_service", None) is None:
        app.state.analysis_service = AnalysisService(analysis_config)
    logger.info(
        "Analysis service ready",
        extra={
            "provider": analysis_config.provider,
            "model": analysis_config.model,
            "timeout_seconds": analysis_config.timeout_seconds,
            "max_retries": analysis_config.max_retries,
        }
    )

    yield

    service = getattr(app.state, "analysis_service", None)
    if service is not None:
        await service.aclose()
        app.state.analysis_service = None
        logger.info("Analysis service closed")


app = FastAPI(title="RoastTemp", lifespan=lifespan)

from api.routes import analysis  # noqa: E402


def _request_context(request: Request, request_id: str) -> dict:
    return {
        "request_id": request_id,
        "endpoint": request.url.path,
        "method": request.method,
        "client_ip": request.client.host if request.client else "unknown",
        "user_agent": request.headers.get("user-agent", "unknown"),
    }


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag each request with an id and log its outcome and duration."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    context = _request_context(request, request_id)
    started = time.perf_counter()

    logger.info(f"Incoming request: {request.method} {request.url.path}", extra=context)

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path} - {e}",
            exc_info=True,
            extra={
                **context,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "error_type": type(e).__name__,
            }
        )
        raise

    logger.info(
        f"Request completed: {request.method} {request.url.path} - {response.status_code}",
        extra={
            **context,
            "status_code": response.status_code,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }
    )
    return response


# The mobile web build is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
