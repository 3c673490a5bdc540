"""HTTP API over the process registry."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, model_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from proctl.config import Config
from proctl.errors import ProcessControlError
from proctl.logging_setup import get_logger
from proctl.models import Process
from proctl.registry import ProcessRegistry

logger = get_logger("api")


class NameResponse(BaseModel):
    """Display name of the user running the service."""

    name: str


class ProcessOut(BaseModel):
    """One process as it appears on the wire."""

    id: int
    name: str
    memory: int


class StartRequest(BaseModel):
    """Command line to launch; the legacy Name key is accepted."""

    name: str = Field(..., max_length=4096, validation_alias=AliasChoices("name", "Name"))


class StartResponse(BaseModel):
    """The process that was launched."""

    success: bool = True
    process: ProcessOut


class StopRequest(BaseModel):
    """
    Which processes to stop.

    Exactly one of id (a single pid) or name (every exact match) is given.
    """

    id: int | None = Field(default=None, ge=0, validation_alias=AliasChoices("id", "Id"))
    name: str | None = Field(default=None, max_length=4096, validation_alias=AliasChoices("name", "Name"))

    @model_validator(mode="after")
    def _exactly_one_key(self) -> "StopRequest":
        if (self.id is None) == (self.name is None):
            raise ValueError("exactly one of 'id' or 'name' is required")
        return self


class StopResponse(BaseModel):
    """Every process that was stopped."""

    success: bool = True
    stopped: list[ProcessOut]


def _out(process: Process) -> ProcessOut:
    return ProcessOut(**process.to_dict())


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Error response body shared by every endpoint.

    {"success": false, "error": "<message>", "error_code": "<CODE>"}
    """
    body: dict[str, Any] = {"success": False, "error": message, "error_code": code}
    if details:
        body["details"] = details
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Map every failure to the shared error body."""

    @app.exception_handler(ProcessControlError)
    async def process_control_exception_handler(request: Request, exc: ProcessControlError):
        logger.warning(
            f"{request.method} {request.url.path} failed: {exc.code} {exc.message}"
        )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        formatted_errors = []
        for error in exc.errors():
            formatted_errors.append({
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {formatted_errors}"
        )

        message = "; ".join(f"{e['field']}: {e['message']}" for e in formatted_errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(
                "INVALID_ARGUMENT",
                message or "Request validation failed",
                {"errors": formatted_errors},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error_code_map = {
            400: "INVALID_ARGUMENT",
            # Route-level codes stay apart from the registry's NOT_FOUND
            404: "HTTP_NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }
        error_code = error_code_map.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(error_code, str(exc.detail) if exc.detail else "An error occurred"),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )


def create_app(
    registry: ProcessRegistry | None = None,
    config: Config | None = None,
) -> FastAPI:
    """Build the process control API around a registry."""
    cfg = config or Config()
    reg = registry or ProcessRegistry(
        include_system=cfg.server.include_system,
        stop_timeout=cfg.server.stop_timeout,
    )

    app = FastAPI(title="proctl process control API")
    app.state.registry = reg
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    register_error_handlers(app)

    @app.get("/api/name", response_model=NameResponse)
    def get_name() -> NameResponse:
        return NameResponse(name=cfg.server.display_name)

    @app.get("/api/processes", response_model=list[ProcessOut])
    def list_processes() -> list[ProcessOut]:
        return [_out(process) for process in reg.list_processes()]

    @app.post("/api/add", response_model=StartResponse)
    def start_process(body: StartRequest) -> StartResponse:
        return StartResponse(process=_out(reg.start(body.name)))

    @app.post("/api/stop", response_model=StopResponse)
    def stop_process(body: StopRequest) -> StopResponse:
        if body.id is not None:
            stopped = [reg.stop(body.id)]
        else:
            stopped = reg.stop_by_name(body.name or "")
        return StopResponse(stopped=[_out(process) for process in stopped])

    return app
