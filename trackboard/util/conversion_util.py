from __future__ import annotations

import math
import re
from typing import Optional


class Conversion:
    """Utility functions for converting and displaying activity values.

    Values are stored as a single scalar in canonical units: compound
    feet/inches entries become total inches and clock times become seconds.
    """

    time_pattern = re.compile(r"^\s*(?:(\d+):)?(?:(\d+):)?(\d+(?:\.\d+)?)\s*$")
    distance_pattern = re.compile(
        r"^\s*(?:(?P<feet>\d+)\s*(?:'|ft)\s*)?(?:(?P<inches>\d+(?:\.\d+)?)\s*(?:\"|in)?)?\s*$"
    )
    unit_pattern = re.compile(r"\(([^()]*)\)\s*$")
    feet_inches_pattern = re.compile(r"ft/in", re.IGNORECASE)

    @staticmethod
    def time_to_seconds(value: str) -> float:
        match = Conversion.time_pattern.match(value)
        if not match:
            raise ValueError(f"Invalid time format: {value!r}")

        parts = match.groups(default="0")
        hours = int(parts[0]) if match.group(2) else 0
        minutes = int(parts[1]) if match.group(2) else int(parts[0] or 0)
        seconds = float(parts[2])

        return hours * 3600 + minutes * 60 + seconds

    @staticmethod
    def distance_to_inches(value: str) -> float:
        match = Conversion.distance_pattern.match(value)
        if not match:
            raise ValueError(f"Invalid distance format: {value!r}")

        feet = int(match.group("feet") or 0)
        inches = float(match.group("inches") or 0.0)
        return feet * 12 + inches

    @staticmethod
    def combine_feet_inches(feet, inches) -> float:
        """Total inches from the two boxes of the compound entry field."""
        try:
            feet_value = float(feet) if str(feet).strip() else 0.0
            inches_value = float(inches) if str(inches).strip() else 0.0
        except (TypeError, ValueError):
            raise ValueError(f"Invalid feet/inches value: {feet!r} ft {inches!r} in") from None
        if feet_value < 0 or inches_value < 0:
            raise ValueError("feet and inches must not be negative")
        return feet_value * 12 + inches_value

    @staticmethod
    def activity_unit(activity: str) -> Optional[str]:
        """``"Deadlift (lbs)"`` -> ``"lbs"``; ``None`` when there is no suffix."""
        match = Conversion.unit_pattern.search(activity or "")
        if not match:
            return None
        return match.group(1).strip() or None

    @staticmethod
    def is_feet_inches_activity(activity: str) -> bool:
        return bool(Conversion.feet_inches_pattern.search(activity or ""))

    @staticmethod
    def is_time_activity(activity: str) -> bool:
        unit = (Conversion.activity_unit(activity) or "").lower()
        return unit in ("seconds", "sec", "time")

    @staticmethod
    def normalize_value(activity: str, raw) -> float:
        """Turn a raw entry (number, string or ``{"value1", "value2"}``) into canonical units."""
        if isinstance(raw, bool):
            raise ValueError("value must be a number")
        if isinstance(raw, (int, float)):
            return float(raw)
        if isinstance(raw, dict):
            return Conversion.combine_feet_inches(raw.get("value1", ""), raw.get("value2", ""))
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError("value is required")

        text = raw.strip()
        if Conversion.is_feet_inches_activity(activity) and ("'" in text or "ft" in text):
            return Conversion.distance_to_inches(text)
        if Conversion.is_time_activity(activity) and ":" in text:
            return Conversion.time_to_seconds(text)
        try:
            return float(text)
        except ValueError:
            raise ValueError(f"Invalid value: {raw!r}") from None

    @staticmethod
    def format_activity_value(activity: str, value) -> str:
        if Conversion.is_feet_inches_activity(activity) and Conversion._is_number(value):
            total_inches = int(math.floor(value + 0.5))
            feet, inches = divmod(total_inches, 12)
            if feet == 0:
                return f"{inches} in"
            if inches == 0:
                return f"{feet} ft"
            return f"{feet} ft {inches} in"
        if Conversion._is_number(value):
            return f"{value:.2f}"
        return str(value)

    @staticmethod
    def _is_number(value) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
