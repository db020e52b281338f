"""Helpers for parsing byte-sized settings."""


def parse_bytes(value: int | str) -> int:
    """Parse a byte quantity from an integer or unit-suffixed string.

    Supported string units (case-insensitive):
        b, k, kb, m, mb, g, gb

    Args:
        value: Raw byte value as an ``int`` or string with an optional unit
            suffix.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed or contains an unknown unit.
    """
    if isinstance(value, int):
        return value

    normalized_value = str(value).strip().lower()

    if normalized_value.isdigit():
        return int(normalized_value)

    numeric_part = normalized_value.rstrip("abcdefghijklmnopqrstuvwxyz")
    unit_suffix = normalized_value[len(numeric_part) :]

    if not numeric_part.isdigit() or not unit_suffix:
        raise ValueError(f"Invalid byte value: {value!r}")

    multipliers = {
        "b": 1,
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    if unit_suffix not in multipliers:
        raise ValueError(f"Unknown byte unit in value: {value!r}")

    return int(numeric_part) * multipliers[unit_suffix]
