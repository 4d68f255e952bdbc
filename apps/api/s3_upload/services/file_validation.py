import re
from decimal import Decimal, InvalidOperation

GENERIC_BINARY_CONTENT_TYPE = "application/octet-stream"
VECTOR_IMAGE_CONTENT_TYPES = {"image/svg+xml"}
VECTOR_IMAGE_EXTENSIONS = {".svg", ".svgz"}

_SIZE_UNITS = {
    "b": 1,
    "kb": 1 << 10,
    "mb": 1 << 20,
    "gb": 1 << 30,
    "tb": 1 << 40,
    "pb": 1 << 50,
}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*([a-z]*)\s*$", re.IGNORECASE)


def parse_size(value: str | int) -> int:
    """Parse a human-readable byte quantity such as ``"1MB"`` or ``"512kb"``.

    Units are 1024-based. A bare number is a byte count.
    """
    if isinstance(value, int):
        if value < 0:
            raise ValueError("size must be non-negative")
        return value

    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number_raw, unit_raw = match.groups()
    unit = unit_raw.lower() or "b"
    if unit not in _SIZE_UNITS:
        raise ValueError(f"Unknown size unit in {value!r}")
    try:
        number = Decimal(number_raw)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid size: {value!r}") from exc
    return int(number * _SIZE_UNITS[unit])


def format_size(size_bytes: int) -> str:
    for unit in ("PB", "TB", "GB", "MB", "KB"):
        factor = _SIZE_UNITS[unit.lower()]
        if abs(size_bytes) >= factor:
            value = Decimal(size_bytes) / Decimal(factor)
            text = f"{value:.2f}".rstrip("0").rstrip(".")
            return f"{text}{unit}"
    return f"{size_bytes}B"


def is_concrete_content_type(mime_type: str | None) -> bool:
    normalized = (mime_type or "").strip().lower()
    return bool(normalized) and normalized != GENERIC_BINARY_CONTENT_TYPE


def is_vector_image(mime_type: str | None, filename: str | None = None) -> bool:
    if (mime_type or "").strip().lower() in VECTOR_IMAGE_CONTENT_TYPES:
        return True
    if filename:
        lowered = filename.lower()
        return any(lowered.endswith(ext) for ext in VECTOR_IMAGE_EXTENSIONS)
    return False


def parse_accept(accept: str | None) -> list[str]:
    return [token.strip().lower() for token in (accept or "").split(",") if token.strip()]


def matches_accept(accept: str | None, *, filename: str, mime_type: str | None) -> bool:
    """Check a file against an HTML ``accept``-style filter.

    Tokens match as ``*``/``*/*`` (anything), ``type/*`` (any subtype),
    ``.ext`` (filename suffix) or an exact MIME type. An empty filter
    accepts everything.
    """
    tokens = parse_accept(accept)
    if not tokens:
        return True

    normalized_type = (mime_type or "").strip().lower()
    lowered_name = filename.lower()
    for token in tokens:
        if token in {"*", "*/*"}:
            return True
        if token.startswith("."):
            if lowered_name.endswith(token):
                return True
            continue
        if token.endswith("/*"):
            if normalized_type.startswith(token[:-1]):
                return True
            continue
        if normalized_type == token:
            return True
    return False
