"""Formatting helpers for showing analysis results and history."""

import re
from datetime import datetime

_ROAST_COLORS = {
    "light": "#C4A77D",
    "medium-light": "#A68A4A",
    "medium": "#8B6914",
    "medium-dark": "#5C3D1E",
    "dark": "#3D2314",
}

# "92", "92.5", "92-96", "92 – 96"
_TEMPERATURE = re.compile(r'(\d+(?:\.\d+)?)(?:\s*[-–]\s*(\d+(?:\.\d+)?))?')


def normalize_roast_level(roast_level: str) -> str:
    """Lowercase and hyphenate, so "Medium Dark" and "medium-dark" compare equal."""
    return re.sub(r'[\s_]+', '-', roast_level.strip().lower())


def roast_color(roast_level: str) -> str:
    """Swatch colour for a roast level; unknown levels get the medium swatch."""
    level = normalize_roast_level(roast_level)
    if level in _ROAST_COLORS:
        return _ROAST_COLORS[level]
    # Free-form answers like "Dark roast"
    for key in ("medium-light", "medium-dark", "light", "dark", "medium"):
        if key in level:
            if key in ("light", "dark") and "medium" in level:
                continue
            return _ROAST_COLORS[key]
    return _ROAST_COLORS["medium"]


def celsius_to_fahrenheit(celsius: float) -> int:
    return round(celsius * 9 / 5 + 32)


def _format_number(value: str) -> str:
    number = float(value)
    return str(int(number)) if number.is_integer() else f"{number:g}"


def format_temperature(text: str, use_fahrenheit: bool) -> str:
    """Render the first temperature (or range) in ``text`` in the chosen unit.

    Input is taken to be Celsius, as the model is prompted for. Text without
    any number is returned unchanged.
    """
    match = _TEMPERATURE.search(text or "")
    if not match:
        return text

    values = [v for v in match.groups() if v is not None]
    if use_fahrenheit:
        rendered = [str(celsius_to_fahrenheit(float(v))) for v in values]
        unit = "°F"
    else:
        rendered = [_format_number(v) for v in values]
        unit = "°C"
    return "-".join(rendered) + unit


def format_history_date(date_string: str) -> str:
    """e.g. ``Mar 4, 2025, 09:30`` in the timestamp's own timezone."""
    date = datetime.fromisoformat(date_string.replace("Z", "+00:00"))
    return f"{date:%b} {date.day}, {date.year}, {date:%H:%M}"
