"""Analysis service: validate an image, classify it upstream, parse the reply."""

from typing import Optional

import httpx

from config import AnalysisConfig
from logging_config import get_logger
from services.errors import ImageTooLarge, MissingImage
from services.response_extractor import AnalysisResult, extract
from services.upstream_client import UpstreamModelClient
from utils.image_utils import estimate_decoded_kb

logger = get_logger()


class AnalysisService:
    """Thin orchestration over the upstream client and the extractor.

    The only local logic is the pre-flight guard, which always runs before
    any network I/O. Every call is independent; nothing is cached.
    """

    def __init__(self, config: AnalysisConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.upstream = UpstreamModelClient(config, http_client=http_client)
        self._health_upstream = self.upstream.with_config(config.for_health_check())

    async def aclose(self):
        await self.upstream.aclose()

    def validate(self, image_data: Optional[str]) -> str:
        """Pre-flight checks. Returns the payload or raises MissingImage/ImageTooLarge."""
        if not image_data or not image_data.strip():
            raise MissingImage()

        size_kb = estimate_decoded_kb(image_data)
        if size_kb > self.config.max_image_kb:
            logger.warning(
                "Rejecting oversized image",
                extra={"size_kb": size_kb, "limit_kb": self.config.max_image_kb}
            )
            raise ImageTooLarge(size_kb, self.config.max_image_kb)
        return image_data

    async def analyze(self, image_data: Optional[str], request_id: Optional[str] = None) -> AnalysisResult:
        payload = self.validate(image_data)

        logger.info(
            "Starting roast analysis",
            extra={"request_id": request_id, "size_kb": estimate_decoded_kb(payload)}
        )
        raw_text = await self.upstream.classify(payload)
        result = extract(raw_text)

        logger.info(
            "Roast analysis completed",
            extra={
                "request_id": request_id,
                "roast_level": result.roastLevel,
                "temperature_range": result.temperatureRange,
            }
        )
        return result

    async def check_health(self) -> bool:
        """Single short upstream round-trip with a 1px image; True if it answered 2xx."""
        try:
            await self._health_upstream.classify(HEALTH_PROBE_IMAGE)
        except Exception as e:
            # Any failure at all reads as down
            logger.warning(
                f"Upstream health check failed: {e}",
                extra={"provider": self.config.provider, "error_type": type(e).__name__}
            )
            return False
        return True


# 1x1 white JPEG, small enough that the probe costs next to nothing
HEALTH_PROBE_IMAGE = (
    "/9j/4AAQSkZJRgABAQEASABIAAD/2wBDAP//////////////////////////////////////"
    "////////////////////////////////////////////////wAALCAABAAEBAREA/8QAFAAB"
    "AAAAAAAAAAAAAAAAAAAAA//EABQQAQAAAAAAAAAAAAAAAAAAAAD/2gAIAQEAAD8AN//Z"
)
