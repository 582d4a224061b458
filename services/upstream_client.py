"""Upstream chat-completion client for roast classification.

Sends the roast prompt plus the bean photo to an OpenAI-style
``/chat/completions`` endpoint and returns the raw completion text.
"""

import time
from typing import Optional

import httpx

from config import AnalysisConfig
from logging_config import get_logger
from services.errors import MalformedResponse, NetworkError, Unconfigured, UpstreamError, UpstreamTimeout
from services.retry import run_with_retries
from utils.image_utils import to_image_url

logger = get_logger()

# Ordered lightest to darkest
ROAST_LEVELS = ("Light", "Medium-Light", "Medium", "Medium-Dark", "Dark")

ROAST_PROMPT = """You are a coffee roast level expert. Analyze this image of coffee beans and determine the roast level.

Classify the roast into one of these categories:
- Light (light tan/cinnamon color, no oil on surface)
- Medium-Light (medium brown, slight sweetness, no oil)
- Medium (rich brown, balanced, no oil)
- Medium-Dark (dark brown, some oil, bittersweet)
- Dark (very dark/black, oily surface, bitter)

Based on the roast level, provide the optimal water temperature range for Aeropress brewing:
- Light roast: 92-96°C (197-205°F)
- Medium-Light roast: 90-94°C (194-201°F)
- Medium roast: 85-90°C (185-194°F)
- Medium-Dark roast: 82-88°C (180-190°F)
- Dark roast: 80-85°C (176-185°F)

Respond in this exact JSON format:
{
  "roastLevel": "the roast level category",
  "temperature": "the midpoint temperature in Celsius",
  "temperatureRange": "the full temperature range",
  "notes": "brief 1-2 sentence brewing tip specific to this roast level for Aeropress"
}"""

# Upstream error bodies can be whole HTML pages
_MAX_LOGGED_BODY = 2000


def build_payload(image_payload: str, config: AnalysisConfig) -> dict:
    """Build the chat-completion request body for one image."""
    return {
        "model": config.model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": ROAST_PROMPT},
                    {"type": "image_url", "image_url": {"url": to_image_url(image_payload)}},
                ],
            }
        ],
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
    }


def _completion_text(data) -> Optional[str]:
    """Pull ``choices[0].message.content`` out of a decoded response."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) and content else None


class UpstreamModelClient:
    """Issues classification requests against the configured upstream model.

    The httpx client may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise one is created and owned here.
    """

    def __init__(self, config: AnalysisConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = http_client is None
        # Per-attempt timeouts are enforced by the retry loop, not by httpx
        self._http = http_client or httpx.AsyncClient(timeout=None)

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    def with_config(self, config: AnalysisConfig) -> "UpstreamModelClient":
        """Return a client sharing this one's connection pool under another policy."""
        return UpstreamModelClient(config, http_client=self._http)

    async def classify(self, image_payload: str) -> str:
        """Send one image for classification and return the raw completion text.

        Raises:
            Unconfigured: No credential; no request is made.
            UpstreamTimeout / NetworkError: Every attempt failed in transit.
            UpstreamError: The upstream answered with a non-2xx status.
            MalformedResponse: A 2xx answer without completion text.
        """
        if not self.config.api_key:
            logger.error("Upstream credential missing, refusing to call upstream model")
            raise Unconfigured()

        payload = build_payload(image_payload, self.config)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

        async def attempt(number: int) -> str:
            return await self._post_once(number, payload, headers)

        return await run_with_retries(
            attempt,
            max_attempts=self.config.max_retries + 1,
            timeout_seconds=self.config.timeout_seconds,
        )

    async def _post_once(self, number: int, payload: dict, headers: dict) -> str:
        start = time.monotonic()
        logger.debug(
            "Calling upstream model",
            extra={"attempt": number, "upstream_url": self.config.url, "model": self.config.model}
        )
        try:
            response = await self._http.post(self.config.url, json=payload, headers=headers)
        except httpx.TimeoutException:
            raise UpstreamTimeout(self.config.timeout_seconds)
        except httpx.HTTPError as e:
            # Transport failures, undecodable bodies, redirect loops
            raise NetworkError(str(e) or type(e).__name__)

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            body = response.text
            logger.error(
                f"Upstream model returned {response.status_code}",
                extra={
                    "attempt": number,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "upstream_body": body[:_MAX_LOGGED_BODY],
                }
            )
            raise UpstreamError(response.status_code, body)

        try:
            data = response.json()
        except ValueError:
            data = None
        content = _completion_text(data)
        if content is None:
            logger.error(
                "Upstream model returned no completion text",
                extra={"attempt": number, "duration_ms": elapsed_ms}
            )
            raise MalformedResponse("No response from upstream model")

        logger.info(
            "Upstream model responded",
            extra={
                "attempt": number,
                "duration_ms": elapsed_ms,
                "content_preview": content[:100],
            }
        )
        return content
