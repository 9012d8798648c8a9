import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fiscalhost.api.v1.collectives import router as collectives_router
from fiscalhost.api.v1.expenses import router as expenses_router
from fiscalhost.api.v1.search import router as search_router
from fiscalhost.core.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Fiscal Host API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_jobs():
    current = get_settings()
    errors = current.validate_required_config()
    if errors:
        for error in errors:
            logger.warning("Configuration problem: %s", error)
        if current.is_production:
            raise RuntimeError("Configuration validation failed in production environment: " + "; ".join(errors))


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(expenses_router, prefix="/api/v1", tags=["expenses"])
app.include_router(collectives_router, prefix="/api/v1", tags=["collectives"])
app.include_router(search_router, prefix="/api/v1", tags=["search"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx in production unless explicitly enabled.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    headers = response.headers
    if "X-Content-Type-Options" not in headers:
        headers["X-Content-Type-Options"] = "nosniff"
    if "X-Frame-Options" not in headers:
        headers["X-Frame-Options"] = "DENY"
    if "Referrer-Policy" not in headers:
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if "Cache-Control" not in headers:
        headers["Cache-Control"] = "no-store"
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
