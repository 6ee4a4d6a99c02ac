"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from course_auth.config import settings
from course_auth.database.engine import init_db
from course_auth.errors import APIError, InternalError, ValidationError
from course_auth.routes.course_access import router as course_access_router
from course_auth.routes.otp import router as otp_router
from course_auth.routes.password_reset import router as password_reset_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    if not settings.token_secret.get_secret_value():
        logger.warning("TOKEN_SECRET not set — course-access links are disabled")
    await init_db()
    logger.info("Database initialised")
    yield
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="One-time passcodes and signed course-access links",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(otp_router)
app.include_router(password_reset_router)
app.include_router(course_access_router)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store failures outside the OTP manager surface as ``INTERNAL_ERROR``."""
    logger.exception("%s %s hit a store failure", request.method, request.url.path)
    error = InternalError("Account store is unavailable")
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request bodies in the same shape as service errors."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    error = ValidationError("Invalid request", details=problems)
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


def run() -> None:
    """Serve the app with uvicorn (``course-auth`` console script)."""
    import uvicorn

    uvicorn.run("course_auth.main:app", host="0.0.0.0", port=8000)
