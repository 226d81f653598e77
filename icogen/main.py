from __future__ import annotations

import time
from contextlib import asynccontextmanager
from http import HTTPStatus
from logging import getLogger
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from icogen.api.v1.router import api_router
from icogen.core.config import settings
from icogen.core.logging import configure_logging, get_request_id, request_id_ctx_var
from icogen.services.ico_container import ImageReadError

logger = getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    configure_logging()
    logger.info("Serving icons from %s", settings.output_dir)
    yield


app = FastAPI(title=settings.project_name, lifespan=lifespan)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request ID to the logging context and echo it on the response."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(settings.request_id_header) or uuid4().hex
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "%s %s -> %s in %.1fms",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
        finally:
            request_id_ctx_var.reset(token)
        response.headers[settings.request_id_header] = request_id
        return response


app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=[settings.request_id_header, "Content-Disposition"],
)

app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


def problem_response(
    request: Request,
    status_code: int,
    detail: str | None = None,
    title: str | None = None,
) -> JSONResponse:
    """Render an RFC 7807 problem document carrying the request ID."""

    if title is None:
        try:
            title = HTTPStatus(status_code).phrase
        except ValueError:
            title = "HTTP Error"

    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": title,
            "status": status_code,
            "detail": detail,
            "instance": str(request.url),
            "request_id": request_id,
        },
        headers={settings.request_id_header: request_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if exc.status_code >= 500:
        logger.error("Request failed: %s", detail, exc_info=exc.__cause__)
    return problem_response(request, exc.status_code, detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return problem_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        str(exc),
        title="Validation Failed",
    )


@app.exception_handler(ImageReadError)
async def image_read_exception_handler(request: Request, exc: ImageReadError) -> JSONResponse:
    logger.error("Source image could not be read", exc_info=exc)
    return problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc),
        title="Image Read Failure",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error", exc_info=exc)
    return problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
    )
