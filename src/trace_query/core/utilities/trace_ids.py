import re

UNSIGNED_64 = 0xFFFFFFFFFFFFFFFF

_LOWER_HEX = re.compile(r"[0-9a-f]{1,32}")


def to_lower_hex(high: int, low: int) -> str:
    """
    Encode a trace ID as lowercase hex: 16 chars when the high half is zero,
    32 chars otherwise. Negative halves are read as unsigned 64-bit values.
    """
    high &= UNSIGNED_64
    low &= UNSIGNED_64
    if high == 0:
        return f"{low:016x}"
    return f"{high:016x}{low:016x}"


def parse_lower_hex(value: str) -> tuple[int, int]:
    """Split a 1-32 char lower-hex trace ID into its (high, low) 64-bit halves"""
    if not isinstance(value, str) or not _LOWER_HEX.fullmatch(value):
        raise ValueError(f"{value!r} should be a 1 to 32 character lower-hex string with no prefix")
    if len(value) > 16:
        return int(value[:-16], 16), int(value[-16:], 16)
    return 0, int(value, 16)
