"""Failure taxonomy for the roast analysis pipeline.

Every failure carries a user-facing message in ``str(exc)``; the HTTP layer
passes that message straight through to the client.
"""

from typing import Iterable


class AnalysisError(Exception):
    """Base class for every failure the analysis pipeline can report."""


class Unconfigured(AnalysisError):
    """The upstream credential is missing. Fatal, never retried."""

    def __init__(self, message: str = "ABACUS_API_KEY is not configured"):
        super().__init__(message)


class TransientUpstreamError(AnalysisError):
    """A failure worth retrying: the upstream never gave us an answer."""


class UpstreamTimeout(TransientUpstreamError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Upstream model timed out after {timeout_seconds:g}s")


class NetworkError(TransientUpstreamError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error contacting upstream model: {detail}")


class UpstreamError(AnalysisError):
    """The upstream answered with a non-2xx status. Surfaced immediately."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Upstream model error: {status}")


class MalformedResponse(AnalysisError):
    """The completion text holds no parseable JSON object."""

    def __init__(self, message: str = "Could not parse response from upstream model"):
        super().__init__(message)


class InvalidFields(AnalysisError):
    """The completion parsed as JSON but lacks required result fields."""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(
            f"Upstream model response is missing required fields: {', '.join(self.missing)}"
        )


class MissingImage(AnalysisError):
    def __init__(self, message: str = "Image data is required"):
        super().__init__(message)


class ImageTooLarge(AnalysisError):
    def __init__(self, size_kb: int, limit_kb: int):
        self.size_kb = size_kb
        self.limit_kb = limit_kb
        super().__init__(f"Image too large ({size_kb} KB). Maximum size is {limit_kb} KB.")


class InvalidRequestBody(AnalysisError):
    """The request body is not JSON, or its fields have the wrong types."""

    def __init__(self, message: str = "Invalid request body"):
        super().__init__(message)
