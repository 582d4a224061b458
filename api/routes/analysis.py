"""Roast analysis and upstream health endpoints."""
import json
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError
from typing import Optional

from config import AnalysisConfig
from logging_config import get_logger
from services.analysis_service import AnalysisService
from services.errors import AnalysisError, InvalidRequestBody, MissingImage, UpstreamError
from services.response_extractor import AnalysisResult

router = APIRouter()
logger = get_logger()


class AnalyzeRequest(BaseModel):
    # Older app builds send the payload as "imageBase64"
    imageData: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("imageData", "imageBase64"),
    )


async def read_image_data(request: Request) -> Optional[str]:
    """Pull the image payload out of the raw request body.

    An empty body or a JSON value that is not an object carries no image.
    Undecodable JSON or a non-string image field raises InvalidRequestBody.
    """
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestBody("Request body is not valid JSON")
    if not isinstance(body, dict):
        return None
    try:
        return AnalyzeRequest.model_validate(body).imageData
    except ValidationError:
        raise InvalidRequestBody("imageData must be a base64 string")


def get_analysis_service(request: Request) -> AnalysisService:
    """Return the app's AnalysisService, building it from the environment on first use."""
    state = request.app.state
    if getattr(state, "analysis_service", None) is None:
        state.analysis_service = AnalysisService(AnalysisConfig.from_env())
    return state.analysis_service


@router.post("/api/analyze", response_model=AnalysisResult)
async def analyze(request: Request):
    """Classify the roast level in a bean photo and recommend a brew temperature."""
    request_id = getattr(request.state, "request_id", None)
    service = get_analysis_service(request)

    try:
        image_data = await read_image_data(request)
        return await service.analyze(image_data, request_id=request_id)
    except MissingImage as e:
        logger.warning(
            "Analysis request without image data",
            extra={"request_id": request_id, "endpoint": "/api/analyze"}
        )
        return JSONResponse(status_code=400, content={"error": str(e)})
    except AnalysisError as e:
        extra = {
            "request_id": request_id,
            "endpoint": "/api/analyze",
            "error_type": type(e).__name__,
        }
        if isinstance(e, UpstreamError):
            extra["upstream_status"] = e.status
        logger.error(f"Roast analysis failed: {e}", exc_info=True, extra=extra)
        return JSONResponse(status_code=500, content={"error": str(e)})
    except Exception as e:
        logger.error(
            f"Roast analysis failed unexpectedly: {e}",
            exc_info=True,
            extra={"request_id": request_id, "endpoint": "/api/analyze", "error_type": type(e).__name__}
        )
        return JSONResponse(status_code=500, content={"error": str(e) or "Analysis failed"})


@router.get("/api/health/{provider}")
async def upstream_health(request: Request, provider: str):
    """Binary liveness of the upstream model; the failure cause is only logged."""
    service = get_analysis_service(request)

    if provider.lower() != service.config.provider.lower():
        return JSONResponse(status_code=404, content={"status": "unknown"})

    if await service.check_health():
        return {"status": "ok"}
    return JSONResponse(status_code=503, content={"status": "down"})


@router.get("/health")
async def health():
    """Process liveness; never touches the upstream."""
    return {"status": "ok"}
