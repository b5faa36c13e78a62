import logging
from urllib.parse import urlparse

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.api import public, staff
from app.config import settings
from app.services.access.errors import AccessError, InvalidLink, OTPRateLimited, TokenNotFound

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Guest List Access", version="0.1.0")

PUBLIC_PREFIX = "/public/"


# =============================================================================
# CSRF Origin Validation Middleware
# =============================================================================


class CSRFOriginMiddleware(BaseHTTPMiddleware):
    """
    Validate Origin/Referer headers on state-changing requests to prevent CSRF.

    - POST, PUT, PATCH, DELETE must include an Origin or Referer header that
      matches the request host or one of settings.trusted_origins
    - GET, HEAD, OPTIONS are always allowed (safe methods)
    - Health check endpoints are exempt
    - Staff endpoints authenticate with a header key and are exempt
    """

    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
    EXEMPT_PATHS = {"/health"}
    EXEMPT_PREFIXES = ("/staff/",)

    @staticmethod
    def _allowed(value: str, expected_host: str) -> bool:
        parsed = urlparse(value)
        if parsed.netloc == expected_host:
            return True
        origin = f"{parsed.scheme}://{parsed.netloc}"
        return origin in {o.rstrip("/") for o in settings.trusted_origins}

    async def dispatch(self, request: Request, call_next):
        if request.method in self.SAFE_METHODS:
            return await call_next(request)

        path = request.url.path
        if path in self.EXEMPT_PATHS or path.startswith(self.EXEMPT_PREFIXES):
            return await call_next(request)

        expected_host = request.headers.get("host", "")

        # Origin first, then Referer
        for header in ("origin", "referer"):
            value = request.headers.get(header)
            if not value:
                continue
            if self._allowed(value, expected_host):
                return await call_next(request)
            logger.warning(
                "CSRF %s mismatch: %s=%s, expected=%s, path=%s",
                header,
                header,
                value,
                expected_host,
                path,
            )
            return JSONResponse(
                status_code=403,
                content={"detail": "Origin validation failed"},
            )

        logger.warning(
            "CSRF missing origin/referer: method=%s, path=%s",
            request.method,
            path,
        )
        return JSONResponse(
            status_code=403,
            content={"detail": "Origin validation failed"},
        )


app.add_middleware(CSRFOriginMiddleware)


@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError):
    """
    Render access failures as JSON.

    On public routes every unusable-token failure looks the same, so link
    holders cannot tell a revoked link from a mistyped one.
    """
    public_route = request.url.path.startswith(PUBLIC_PREFIX)
    if isinstance(exc, InvalidLink):
        logger.info("Link rejected (%s) on %s", exc.code, request.url.path)
        if public_route:
            return JSONResponse(
                status_code=InvalidLink.status_code,
                content={"error": InvalidLink.code, "detail": InvalidLink.message},
            )
        if isinstance(exc, TokenNotFound):
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=exc.to_dict())

    headers = None
    if isinstance(exc, OTPRateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(public.router)
app.include_router(staff.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
