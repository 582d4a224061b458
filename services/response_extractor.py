"""Extract a roast analysis from free-form model output.

The model is asked for pure JSON but often wraps it in prose
("Sure! Here is the result: {...}"), so we look for the outermost
brace-delimited span instead of parsing the whole reply.
"""

import json
import re

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from services.errors import InvalidFields, MalformedResponse

REQUIRED_FIELDS = ("roastLevel", "temperature", "temperatureRange", "notes")

# First "{" through last "}", across newlines
_JSON_SPAN = re.compile(r'\{[\s\S]*\}')


class AnalysisResult(BaseModel):
    """Typed roast classification. ``roastLevel`` is deliberately unchecked."""

    model_config = ConfigDict(frozen=True)

    roastLevel: str
    temperature: str
    temperatureRange: str
    notes: str

    @field_validator("roastLevel", "temperature", "temperatureRange", "notes", mode="before")
    @classmethod
    def _coerce_to_str(cls, value):
        # Models occasionally emit "temperature": 82
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def extract(raw_text: str) -> AnalysisResult:
    """Parse the completion text into an AnalysisResult.

    Raises:
        MalformedResponse: No JSON object could be located or parsed.
        InvalidFields: The object lacks one or more required fields.
    """
    match = _JSON_SPAN.search(raw_text or "")
    if not match:
        raise MalformedResponse()

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        raise MalformedResponse()

    if not isinstance(parsed, dict):
        raise MalformedResponse()

    missing = [name for name in REQUIRED_FIELDS if parsed.get(name) is None]
    if missing:
        raise InvalidFields(missing)

    try:
        return AnalysisResult(**{name: parsed[name] for name in REQUIRED_FIELDS})
    except ValidationError as e:
        raise InvalidFields(sorted({str(err["loc"][0]) for err in e.errors()}))
