import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .api import links
from .config import settings
from .core.access import AccessVerifier
from .core.errors import GENERIC_ERROR_MESSAGE, ServiceError
from .core.rate_limit import TieredRateLimiter
from .core.telemetry import TelemetryRecorder
from .database import Base, SessionLocal, engine
from .services.safety import SafetyChecker
from .utils.logging import initialize_logging

initialize_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(
    title="GateLink",
    description="URL shortener with token and NFT gated links",
    version="1.0.0"
)

# External clients, built once and handed to handlers through dependencies
app.state.rate_limiter = TieredRateLimiter.from_settings(settings)
app.state.safety_checker = SafetyChecker.from_settings(settings)
app.state.access_verifier = AccessVerifier.from_settings(settings)
app.state.telemetry = TelemetryRecorder(SessionLocal)

# Per-IP limiter for unlock attempts
app.state.limiter = links.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render service errors as {"error": ...}; internal detail only goes to the log"""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail,
            exc_info=exc,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query strings are plain 400s"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})


# Root endpoint, also the target for server-error redirects
@app.get("/", response_class=HTMLResponse)
async def root():
    return HTMLResponse(content="<h1>GateLink</h1><p>Service is running.</p>")


@app.get(settings.EXPIRED_PATH, response_class=HTMLResponse)
async def expired_page():
    """Shared page for expired, inactive and unknown links"""
    return HTMLResponse(content=links.EXPIRED_PAGE_HTML, status_code=410)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "GateLink"}


# Include routers
app.include_router(links.router, tags=["links"])

# Redirect endpoints (must be last to not conflict with other routes)
app.get("/{short_code}")(links.redirect_to_url)
app.post("/{short_code}", status_code=204)(links.swallow_post)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
