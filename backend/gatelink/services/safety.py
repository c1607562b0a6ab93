"""Google Safe Browsing lookup used to refuse malicious destinations.

Fail-open tradeoff: when the API key is missing, or the lookup fails for any
reason (timeout, transport error, bad status, malformed body), the URL is
treated as safe. Operators who need strict filtering must monitor the error logs below.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]


class SafetyChecker:
    """Client for the Safe Browsing v4 ``threatMatches:find`` endpoint"""

    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str = "https://safebrowsing.googleapis.com/v4/threatMatches:find",
        timeout: float = 3.0,
        client_id: str = "gatelink",
        client_version: str = "1.0.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.client_id = client_id
        self.client_version = client_version
        self.transport = transport

        if not api_key:
            logger.warning("SAFE_BROWSING_API_KEY is not set; URL safety checks are disabled")

    @classmethod
    def from_settings(cls, settings) -> "SafetyChecker":
        return cls(
            api_key=settings.SAFE_BROWSING_API_KEY,
            endpoint=settings.SAFE_BROWSING_URL,
            timeout=settings.SAFE_BROWSING_TIMEOUT,
            client_id=settings.SAFE_BROWSING_CLIENT_ID,
        )

    def build_request_body(self, url: str) -> dict:
        return {
            "client": {
                "clientId": self.client_id,
                "clientVersion": self.client_version,
            },
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url}],
            },
        }

    async def is_unsafe(self, url: str) -> bool:
        """
        Check a URL against Safe Browsing.

        Args:
            url: The URL to check

        Returns:
            True if Safe Browsing reports at least one threat match, False otherwise
            (including every failure case)
        """
        if not self.api_key:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=self.build_request_body(url),
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError):
            logger.error("Safe Browsing lookup failed; treating URL as safe", exc_info=True)
            return False

        matches = data.get("matches") if isinstance(data, dict) else None
        if matches:
            threats = sorted({m.get("threatType", "UNKNOWN") for m in matches if isinstance(m, dict)})
            logger.warning("Unsafe URL detected by Safe Browsing: %s (%s)", url, ", ".join(threats))
            return True

        return False
