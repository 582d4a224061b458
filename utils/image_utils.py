"""Helpers for base64 image payloads as sent by the mobile client."""

import math
import re

DEFAULT_IMAGE_MIME = "image/jpeg"

# Anything that already names a scheme ("data:", "https:", "file:") is a URI
_URI_SCHEME = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*:')
_DATA_URI_PREFIX = re.compile(r'^data:[^,]*,')


def has_uri_scheme(payload: str) -> bool:
    """Return True if the payload is already a URI rather than bare base64."""
    return bool(_URI_SCHEME.match(payload))


def to_image_url(payload: str, mime_type: str = DEFAULT_IMAGE_MIME) -> str:
    """Normalize a payload into something usable as an ``image_url``.

    Prefixed payloads pass through untouched; bare base64 is wrapped
    in a data URI.
    """
    if has_uri_scheme(payload):
        return payload
    return f"data:{mime_type};base64,{payload}"


def strip_data_uri(payload: str) -> str:
    """Drop a leading ``data:<mime>;base64,`` header, if any."""
    return _DATA_URI_PREFIX.sub('', payload, count=1)


def estimate_decoded_kb(payload: str) -> int:
    """Estimate the decoded size of a base64 payload in KB.

    Uses the standard 4:3 base64 expansion ratio, rounding up at both
    the byte and the KB step. Only the base64 body counts; a data URI
    header is ignored.
    """
    body = strip_data_uri(payload)
    decoded_bytes = math.ceil(len(body) * 3 / 4)
    return math.ceil(decoded_bytes / 1024)
