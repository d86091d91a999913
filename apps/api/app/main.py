"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import requests

from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.routes import callbacks_router, jobs_router, transcribe_router, verification_router
from app.schemas.error import ErrorResponse

# Routes whose malformed input is reported as 400 instead of FastAPI's 422.
_BAD_REQUEST_VALIDATION_PATHS: dict[tuple[str, str], str] = {
    ("POST", "/api/v1/transcribe"): "Invalid transcription request",
    ("POST", "/api/v1/callbacks/standard"): "Invalid callback request",
    ("POST", "/api/v1/callbacks/premium"): "Invalid callback request",
    ("POST", "/api/v1/verification"): "Invalid verification request",
}


def create_app() -> FastAPI:
    app = FastAPI(title="Scribegate API", version="1.0.0")
    app.state.store = InMemoryStore()
    app.state.http_session = requests.Session()

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        message = _BAD_REQUEST_VALIDATION_PATHS.get((request.method.upper(), route_path))
        if message is not None:
            fields = sorted({".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()})
            payload = ErrorResponse(code="validation_error", message=message, details={"fields": fields})
            return JSONResponse(status_code=400, content=payload.model_dump(mode="json"))

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(transcribe_router, prefix=api_prefix)
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(callbacks_router, prefix=api_prefix)
    app.include_router(verification_router, prefix=api_prefix)

    return app


app = create_app()
