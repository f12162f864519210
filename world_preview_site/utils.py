"""Text helpers shared by the form schemas."""
import re
from typing import Any, Optional

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F]")
_HAS_SCHEME = re.compile(r"^(https?:)?//", re.IGNORECASE)


def sanitize_text(value: Any) -> str:
    """Strip ASCII control characters and surrounding whitespace."""
    if not isinstance(value, str):
        return ""
    return _CONTROL_CHARS.sub("", value).strip()


def normalize_url_if_present(value: Any) -> Optional[Any]:
    """Default a bare host/path to https://; blank strings become None."""
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if trimmed == "":
        return None
    if _HAS_SCHEME.match(trimmed):
        return trimmed
    return f"https://{trimmed}"
