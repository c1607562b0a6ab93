"""FastAPI dependencies exposing the clients built at startup (see main.py)."""

from fastapi import Request

from .core.access import AccessVerifier
from .core.rate_limit import TieredRateLimiter
from .core.telemetry import TelemetryRecorder
from .services.safety import SafetyChecker


def get_rate_limiter(request: Request) -> TieredRateLimiter:
    return request.app.state.rate_limiter


def get_safety_checker(request: Request) -> SafetyChecker:
    return request.app.state.safety_checker


def get_access_verifier(request: Request) -> AccessVerifier:
    return request.app.state.access_verifier


def get_telemetry(request: Request) -> TelemetryRecorder:
    return request.app.state.telemetry
