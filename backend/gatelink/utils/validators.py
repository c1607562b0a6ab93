from urllib.parse import urlparse
import re

MAX_URL_LENGTH = 2048

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_url(url: str) -> tuple[bool, str]:
    """
    Validate that a URL is an absolute HTTP(S) URL.

    Args:
        url: The URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url or not url.strip():
        return False, "URL cannot be empty"

    if len(url) > MAX_URL_LENGTH:
        return False, f"URL is too long (max {MAX_URL_LENGTH} characters)"

    try:
        result = urlparse(url)
    except ValueError:
        return False, "Invalid URL format"

    # Must have scheme and host
    if not result.scheme or not result.hostname:
        return False, "Invalid URL format"

    # Only http and https
    if result.scheme.lower() not in ("http", "https"):
        return False, "Only HTTP and HTTPS URLs are allowed"

    return True, ""


def is_valid_address(address: str) -> bool:
    """Check that a string looks like a 20-byte hex account address (0x + 40 hex chars)"""
    return bool(address) and ADDRESS_RE.match(address) is not None


def get_client_ip(request) -> str:
    """
    Get client IP address from request.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    # Check for X-Forwarded-For header (if behind proxy)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()

    # Otherwise use client.host
    return request.client.host if request.client else "unknown"
