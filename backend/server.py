from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging

from core.config import API_PREFIX, CORS_ORIGINS, PORT
from core.database import db as default_db, create_database_indexes
from core.dependencies import get_current_user, get_optional_user
from core.errors import ServiceError, StorageError
from routes import (
    health_router,
    setup_wedding_routes,
    setup_rsvp_routes,
    setup_guest_routes,
    setup_public_routes,
)
from services.reconciler import CounterReconciler
from tasks import init_tasks, stop_tasks, auto_sweep_task

logger = logging.getLogger(__name__)

# Request-location prefixes that mean nothing to API clients
_LOCATION_PREFIXES = ("body", "query", "path", "header")


def _validation_field(error: dict):
    parts = [str(part) for part in error.get("loc", ()) if part not in _LOCATION_PREFIXES]
    return ".".join(parts) or None


async def service_error_handler(request: Request, exc: ServiceError):
    if isinstance(exc, StorageError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    body = {"error": first.get("msg", "Invalid request"), "code": "VALIDATION"}
    field = _validation_field(first)
    if field:
        body["field"] = field
    return JSONResponse(status_code=400, content=body)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def create_app(database=None, reconciler=None, run_background_tasks: bool = True) -> FastAPI:
    """
    Build the API around a database handle.

    Tests pass their own database and reconciler; in production the Motor
    database from core.database is used.
    """
    if database is None:
        database = default_db
    if reconciler is None:
        reconciler = CounterReconciler(database)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown"""
        try:
            await create_database_indexes(database)
        except Exception as e:
            logger.error(f"Error creating indexes (may already exist): {e}")

        sweep_task = None
        if run_background_tasks:
            init_tasks(database, reconciler, logger)
            sweep_task = asyncio.create_task(auto_sweep_task())
        yield
        if sweep_task is not None:
            stop_tasks()
            sweep_task.cancel()
        await reconciler.drain()

    app = FastAPI(title="Wedding Invitation API", lifespan=lifespan)
    app.state.db = database
    app.state.reconciler = reconciler

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    setup_wedding_routes(app, database, get_current_user)
    setup_rsvp_routes(app, database, reconciler, get_current_user, get_optional_user)
    setup_guest_routes(app, database, reconciler, get_current_user)
    setup_public_routes(app, database, reconciler)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=PORT)
