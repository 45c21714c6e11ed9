import asyncio
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guardwise import models  # noqa: F401
from guardwise.db import Base, engine
from guardwise.errors import ApiError, error_response, get_request_id
from guardwise.logging_utils import setup_json_logging
from guardwise.routers import admin, public
from guardwise.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from guardwise.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(settings.log_level)
logger = logging.getLogger("guardwise.request")
startup_logger = logging.getLogger("guardwise.startup")

HTTP_ERROR_CODES = {
    401: "INVALID_TOKEN",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "TOO_MANY_ATTEMPTS",
}


def _validation_details(exc: RequestValidationError) -> dict[str, Any]:
    fields = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        fields.append({"field": location or "body", "message": item.get("msg", "Invalid value")})
    return {"fields": fields}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        return error_response(
            request,
            status_code=exc.status_code,
            code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail else "Request failed.",
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(
            request,
            status_code=422,
            code="VALIDATION_ERROR",
            message="Request payload is invalid.",
            details=_validation_details(exc),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_error",
            extra={"request_id": get_request_id(request), "path": request.url.path, "method": request.method},
        )
        return error_response(request, status_code=500, code="INTERNAL_ERROR", message="Unexpected server error.")


async def run_schema_guard(app: FastAPI) -> SchemaGuardResult:
    """Create the document table when allowed, then verify the live schema.

    Strict mode turns a failed check into a startup error.
    """
    if settings.auto_create_schema:
        await asyncio.to_thread(Base.metadata.create_all, engine)
        startup_logger.info("schema_auto_created", extra={"tables": sorted(Base.metadata.tables)})

    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        startup_logger.info("schema_guard_ok", extra=result.to_dict())
        return result

    startup_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        raise RuntimeError(f"Collection schema is not ready: {'; '.join(result.issues)}")
    return result


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-Id"] = request_id
            return response
        finally:
            logger.info(
                "request_complete",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    "actor_id": getattr(request.state, "actor_id", "anonymous"),
                },
            )

    register_error_handlers(app)
    app.include_router(public.router)
    app.include_router(admin.router)

    @app.on_event("startup")
    async def prepare_schema() -> None:
        await run_schema_guard(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        result: SchemaGuardResult | None = getattr(app.state, "schema_guard_result", None)
        return {
            "status": "ok",
            "site_timezone": settings.site_timezone,
            "seed_demo_data": settings.seed_demo_data,
            "schema_guard": result.to_dict() if result is not None else {"ok": False, "issues": ["SCHEMA_GUARD_NOT_RUN"]},
        }

    return app


app = create_app()
