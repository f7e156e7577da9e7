from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .deps import build_user_store
from .middleware.access_log import AccessLogMiddleware
from .middleware.request_context import RequestContextMiddleware
from .modules.users.errors import UserError
from .modules.users.store import UserStore
from .modules.users.user_service import UserService
from .observability.logging import configure_logging, get_logger
from .problem_details import problem_response
from .routers.health import router as health_router
from .routers.users import router as users_router
from .settings import Settings, get_settings


def create_app(settings: Settings | None = None, store: UserStore | None = None) -> FastAPI:
    settings = settings or get_settings()

    # Logging must be configured before the app starts handling requests.
    configure_logging(level=settings.log_level)
    log = get_logger("startup")

    app = FastAPI(
        title="Users API",
        version=settings.version if settings.version != "unknown" else "1.0.0",
        default_response_class=ORJSONResponse,
        redirect_slashes=False,
    )

    log.info("app_starting", settings=settings.to_log_safe_dict())

    # The store handle lives for the whole process; no teardown needed.
    app.state.settings = settings
    app.state.user_service = UserService(
        store if store is not None else build_user_store(settings),
        list_limit=settings.users_list_limit,
    )

    # Middlewares (order matters; last added is outermost)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/health"})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=3000,
    )
    # Outermost: request context (request-id) wraps everything.
    app.add_middleware(RequestContextMiddleware)

    # Error handlers
    app.add_exception_handler(UserError, _user_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    # Routes
    app.include_router(health_router)
    app.include_router(users_router)

    return app


def _user_error_handler(request: Request, exc: UserError) -> Response:
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors or None,
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    status_code = int(getattr(exc, "status_code", 500) or 500)
    detail = getattr(exc, "detail", None)
    safe_detail = str(detail) if detail is not None else None

    if status_code == 404:
        safe_detail = "Route not found"

    return problem_response(
        request=request,
        status_code=status_code,
        detail=safe_detail,
    )


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    # Malformed bodies are client input errors like any other: 400, not 422.
    errors: list[str] = []
    for e in exc.errors():
        loc = e.get("loc") or ()
        loc_path = ".".join([str(x) for x in loc if x != "body"])
        msg = str(e.get("msg", "Invalid value"))
        errors.append(f"{loc_path}: {msg}" if loc_path else msg)
    return problem_response(
        request=request,
        status_code=400,
        title="Validation Failed",
        detail="Request validation failed",
        errors=errors,
    )


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # Full traceback goes to the logs; the response stays generic.
    get_logger("unhandled").exception(
        "unhandled_exception",
        exc_info=exc,
        http_method=str(getattr(request, "method", "") or "").upper() or None,
        path=str(getattr(getattr(request, "url", None), "path", "") or ""),
    )

    return problem_response(
        request=request,
        status_code=500,
        title="Internal Server Error",
        detail="Internal server error",
    )


app = create_app()
