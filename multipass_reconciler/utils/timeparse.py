import math
import re
from datetime import timedelta

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([-+]?)((?:{_COMPONENT})+)")
_COMPONENT_RE = re.compile(_COMPONENT)
_BARE_NUMBER_RE = re.compile(r"[-+]?(\d+(\.\d*)?|\.\d+)")
_MAX_SECONDS = timedelta.max.total_seconds()


def parse_duration(time_str: str) -> timedelta:
    """
    Parse a duration string like '30s', '5m', '1h30m45s' or '1.5h'.

    Every component needs an explicit unit; a bare number is rejected.
    The result may be negative, callers decide whether that is allowed.
    """
    if not isinstance(time_str, str) or not time_str.strip():
        raise ValueError("invalid duration: empty value")

    text = time_str.strip()
    if _BARE_NUMBER_RE.fullmatch(text):
        raise ValueError(f"duration '{text}' must include time unit (e.g. 30s, 5m, 1h)")

    match = _DURATION_RE.fullmatch(text)
    if not match:
        raise ValueError(f"invalid duration '{text}'")

    sign, body = match.group(1), match.group(2)
    seconds = 0.0
    for value, unit in _COMPONENT_RE.findall(body):
        seconds += float(value) * _UNIT_SECONDS[unit]

    if sign == "-":
        seconds = -seconds
    if abs(seconds) > _MAX_SECONDS:
        raise ValueError(f"duration '{text}' out of range")
    try:
        return timedelta(seconds=seconds)
    except OverflowError as e:
        raise ValueError(f"duration '{text}' out of range") from e


def duration_to_seconds(duration: timedelta) -> int:
    """Whole seconds for multipass' --timeout flag, rounded up, never below 1."""
    return max(1, math.ceil(duration.total_seconds()))
