import re

# multipass size suffixes; a bare integer is a byte count
UNIT_MULTIPLIERS = {
    "": 1,
    "K": 10**3,
    "M": 10**6,
    "G": 10**9,
    "T": 10**12,
}

_SIZE_RE = re.compile(r"([-+]?)(\d+)(\.\d+)?([A-Za-z]*)")


def parse_size(size_str: str) -> int:
    """
    Parse a size string like '512M', '2G' or '1073741824' into bytes.

    Raises ValueError with a reason suitable for showing to the user.
    """
    if not isinstance(size_str, str) or not size_str.strip():
        raise ValueError("value cannot be empty")

    match = _SIZE_RE.fullmatch(size_str.strip())
    if not match:
        raise ValueError(f"invalid format '{size_str}', expected <integer><unit> such as 512M or 2G")

    sign, digits, fraction, unit = match.groups()
    if sign == "-":
        raise ValueError("must be positive")
    if fraction:
        raise ValueError("decimal values not supported, use a smaller unit instead")

    key = unit.upper()
    if key.endswith("B"):
        key = key[:-1]
    if key not in UNIT_MULTIPLIERS:
        raise ValueError(f"invalid unit '{unit}', expected one of K, M, G, T")

    return int(digits) * UNIT_MULTIPLIERS[key]


def format_size(num_bytes: int) -> str:
    """Render a byte count with the largest unit that divides it exactly."""
    for unit in ("T", "G", "M", "K"):
        multiplier = UNIT_MULTIPLIERS[unit]
        if num_bytes and num_bytes % multiplier == 0:
            return f"{num_bytes // multiplier}{unit}"
    return str(num_bytes)
