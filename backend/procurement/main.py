from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from .error_handlers import install_error_handlers
from .middleware import AccessLogMiddleware, AuthMiddleware, RequestContextMiddleware
from .middleware.cors import build_allowed_origins
from .middleware.request_context import REQUEST_ID_HEADER
from .observability.logging import configure_logging, get_logger
from .observability.otel import configure_otel, instrument_app
from .routers.auth import router as auth_router
from .routers.documents import router as documents_router
from .routers.health import router as health_router
from .routers.responses import router as responses_router
from .routers.rfps import router as rfps_router
from .settings import settings


def create_app() -> FastAPI:
    configure_logging(level="INFO")
    configure_otel(settings)

    app = FastAPI(
        title="Procurement Exchange Backend",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        redirect_slashes=False,
    )
    get_logger("startup").info("app_starting", settings=settings.to_log_safe_dict())

    # Last added runs first: request context -> CORS -> access log -> auth -> routes.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/"})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=build_allowed_origins(
            frontend_base_url=settings.frontend_base_url,
            frontend_urls=settings.frontend_urls,
        ),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
        max_age=3000,
    )
    app.add_middleware(RequestContextMiddleware)

    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(rfps_router, prefix="/api/rfps")
    app.include_router(responses_router, prefix="/api/responses")
    app.include_router(documents_router, prefix="/api/documents")

    instrument_app(app, settings)
    return app


app = create_app()
