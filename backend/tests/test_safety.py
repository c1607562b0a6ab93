import asyncio
import json

import httpx

from gatelink.services.safety import THREAT_TYPES, SafetyChecker


ENDPOINT = "https://safebrowsing.test/v4/threatMatches:find"
URL = "https://example.com/page"


def checker(handler, api_key="test-key") -> SafetyChecker:
    return SafetyChecker(api_key, endpoint=ENDPOINT, timeout=1.0, transport=httpx.MockTransport(handler))


def test_missing_api_key_skips_lookup():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    assert asyncio.run(checker(handler, api_key=None).is_unsafe(URL)) is False
    assert calls == []


def test_threat_match_is_unsafe():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json={"matches": [{"threatType": "MALWARE", "threat": {"url": URL}}]})

    assert asyncio.run(checker(handler).is_unsafe(URL)) is True

    request = seen[0]
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["threatInfo"]["threatTypes"] == THREAT_TYPES
    assert body["threatInfo"]["threatEntries"] == [{"url": URL}]


def test_no_matches_is_safe():
    def handler(request):
        return httpx.Response(200, json={})

    assert asyncio.run(checker(handler).is_unsafe(URL)) is False


def test_api_error_fails_open():
    def handler(request):
        return httpx.Response(500, json={"error": {"message": "backend error"}})

    assert asyncio.run(checker(handler).is_unsafe(URL)) is False


def test_transport_error_fails_open():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert asyncio.run(checker(handler).is_unsafe(URL)) is False


def test_malformed_body_fails_open():
    def handler(request):
        return httpx.Response(200, text="not json")

    assert asyncio.run(checker(handler).is_unsafe(URL)) is False
