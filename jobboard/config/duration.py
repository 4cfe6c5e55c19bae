"""Duration parsing utilities for configuration."""

import re


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")


def parse_duration(duration_str: str) -> int:
    """Parse a duration string to seconds.

    Supports human-readable ("30s", "1m", "1h30m") and ISO-8601 ("PT30S",
    "PT1M", "P1D") formats.

    Raises:
        DurationParseError: If the duration string is invalid

    Examples:
        >>> parse_duration("1m")
        60
        >>> parse_duration("PT30S")
        30
    """
    if not isinstance(duration_str, str):
        raise DurationParseError(f"Duration must be a string, got {type(duration_str).__name__}")

    duration_str = duration_str.strip()
    if not duration_str:
        raise DurationParseError("Duration string cannot be empty")

    if duration_str.upper().startswith("P"):
        return _parse_iso8601_duration(duration_str)

    return _parse_human_readable_duration(duration_str)


def _parse_iso8601_duration(duration_str: str) -> int:
    match = _ISO_PATTERN.match(duration_str.upper())
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{duration_str}'. "
            "Expected format like 'PT30S', 'PT1M', 'PT1H' or 'P1D'"
        )

    days, hours, minutes, seconds = match.groups()

    total_seconds = 0
    if days:
        total_seconds += int(days) * _UNIT_SECONDS["d"]
    if hours:
        total_seconds += int(hours) * _UNIT_SECONDS["h"]
    if minutes:
        total_seconds += int(minutes) * _UNIT_SECONDS["m"]
    if seconds:
        total_seconds += int(float(seconds))

    if total_seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_seconds


def _parse_human_readable_duration(duration_str: str) -> int:
    matches = re.findall(r"(\d+)\s*([smhd])", duration_str.lower())

    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{duration_str}'. "
            "Expected format like '30s', '1m', '1h', or combinations like '1m30s'"
        )

    # The whole string must be consumed by number+unit pairs
    parsed_str = "".join(f"{num}{unit}" for num, unit in matches)
    if parsed_str != re.sub(r"\s+", "", duration_str.lower()):
        raise DurationParseError(
            f"Invalid characters in duration: '{duration_str}'. "
            "Use only digits and units: s (seconds), m (minutes), h (hours), d (days)"
        )

    total_seconds = sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)

    if total_seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_seconds


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int,
    max_seconds: int,
    label: str = "Interval",
) -> None:
    """Validate that a duration lies within [min_seconds, max_seconds].

    Raises:
        DurationParseError: If duration is outside the valid range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {seconds_to_human_readable(duration_seconds)}. "
            f"Minimum is {seconds_to_human_readable(min_seconds)}."
        )

    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {seconds_to_human_readable(duration_seconds)}. "
            f"Maximum is {seconds_to_human_readable(max_seconds)}."
        )


def seconds_to_human_readable(seconds: int) -> str:
    """Convert seconds to a coarse human-readable string ("10 seconds", "1 hour")."""
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    elif seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    days = seconds // 86400
    return f"{days} day{'s' if days != 1 else ''}"
