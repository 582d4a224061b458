"""Client side of ``POST /api/analyze``."""

from typing import Optional

import httpx

from logging_config import get_logger
from services.response_extractor import AnalysisResult

logger = get_logger()


class AnalysisRequestError(Exception):
    """The server rejected or failed the analysis; ``str(exc)`` is user-facing."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AnalysisApiClient:
    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    async def analyze(self, image_base64: str) -> AnalysisResult:
        try:
            response = await self._http.post(
                f"{self.base_url}/api/analyze",
                json={"imageData": image_base64},
            )
        except httpx.HTTPError as e:
            logger.error(f"Could not reach analysis server: {e}", extra={"base_url": self.base_url})
            raise AnalysisRequestError(f"Could not reach analysis server: {e}")

        if not response.is_success:
            raise AnalysisRequestError(_error_message(response), status_code=response.status_code)

        return AnalysisResult.model_validate(response.json())


def _error_message(response: httpx.Response) -> str:
    """Prefer the server's ``error`` field, then the raw body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or "Analysis failed"
