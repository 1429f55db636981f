"""Main application entry point for Waypoint."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from waypoint import __version__
from waypoint.api.middleware import APIKeyMiddleware, RateLimitMiddleware
from waypoint.utils.config import Settings, get_settings
from waypoint.utils.exceptions import WaypointError
from waypoint.utils.logging import configure_logging

_logger = logging.getLogger("waypoint.main")


def _validate_production_env(settings: Settings) -> None:
    """Fail fast if required environment variables are missing in production."""
    if not settings.is_production():
        return

    missing = []
    if not settings.security.api_key:
        missing.append("WAYPOINT_SECURITY__API_KEY")
    if not settings.database.url.startswith("postgresql"):
        missing.append("WAYPOINT_DATABASE__URL (must be PostgreSQL in production)")

    if missing:
        msg = (
            "Production startup blocked, missing required environment variables: "
            + ", ".join(missing)
        )
        _logger.critical(msg)
        raise SystemExit(msg)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WaypointError)
    async def waypoint_error_handler(request: Request, exc: WaypointError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    is_production = settings.is_production()

    configure_logging(settings.logging.level, json_output=settings.logging.json_output)
    _validate_production_env(settings)

    app = FastAPI(
        title="Waypoint API",
        description="Decision requests raised by agents and resolved by people",
        version=__version__,
        debug=False if is_production else settings.debug,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
    )

    # Rate limiting (runs after auth so unauthenticated requests aren't counted)
    app.add_middleware(RateLimitMiddleware)

    # API key authentication (enabled when WAYPOINT_SECURITY__API_KEY is set)
    app.add_middleware(APIKeyMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-API-Key",
            "X-User-Id",
            "X-User-Name",
            "X-User-Email",
        ],
    )

    _register_exception_handlers(app)

    from waypoint.api.v1 import router as api_router

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "Waypoint API", "version": __version__}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.on_event("startup")
    async def startup_event():
        """Create tables on startup."""
        from waypoint.core.database import init_database

        await init_database()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Let in-flight side effects finish, then close the pool."""
        from waypoint.api.dependencies import reset_side_effect_dispatcher
        from waypoint.core.database import dispose_engine

        dispatcher = reset_side_effect_dispatcher()
        if dispatcher is not None:
            await dispatcher.drain()
        await dispose_engine()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "waypoint.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
    )
