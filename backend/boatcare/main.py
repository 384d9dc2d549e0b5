import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from boatcare.api.v1.service_requests import router as service_requests_router
from boatcare.core.config import get_settings
from boatcare.core.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error"

app = FastAPI(
    title="Boatcare Service Requests API",
    version="0.1.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(service_requests_router, prefix="/api/v1", tags=["service-requests"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx unless explicitly enabled; keep the error code.
    if exc.status_code >= 500 and not settings.expose_error_details:
        code = exc.detail.get("code", "INTERNAL_ERROR") if isinstance(exc.detail, dict) else "INTERNAL_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": {"code": code, "message": INTERNAL_ERROR_MESSAGE}},
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    message = str(exc) if settings.expose_error_details else INTERNAL_ERROR_MESSAGE
    return JSONResponse(status_code=500, content={"detail": {"code": "INTERNAL_ERROR", "message": message}})


@app.get("/health")
async def health():
    return {"status": "ok"}
