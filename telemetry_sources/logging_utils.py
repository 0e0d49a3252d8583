"""
Telemetry Sources - Credential Masking.

NEVER log a raw channel API key. Every URL or parameter map that reaches
a log line or an exception passes through these helpers first.
"""

from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


SENSITIVE_PARAMS = {
    "api_key",
    "apikey",
    "key",
    "token",
}


def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.
    
    Args:
        value: Value to mask
        show_chars: Number of chars to show at start
        
    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_params(params: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Return a copy of params with sensitive values masked."""
    if not params:
        return {}
    
    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        else:
            masked[key] = value
    return masked


def mask_url(url: str) -> str:
    """Mask sensitive query parameters embedded in a URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    
    query = parse_qsl(parts.query, keep_blank_values=True)
    masked = [
        (key, mask_value(value) if key.lower() in SENSITIVE_PARAMS else value)
        for key, value in query
    ]
    return urlunsplit(parts._replace(query=urlencode(masked, safe="*.")))
