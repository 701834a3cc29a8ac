import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.routing import APIRouter
from fastapi.staticfiles import StaticFiles
from loguru import logger
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sse_starlette.sse import AppStatus

from swarmdesk.server.db.engine import create_engine, create_session_factory
from swarmdesk.server.db.migrate import upgrade_database
from swarmdesk.server.errors import StorageError, SwarmDeskError
from swarmdesk.server.execution.credentials import EnvCredentialProvider
from swarmdesk.server.execution.runner import SwarmRunner
from swarmdesk.server.execution.spawner import AsyncioSpawner
from swarmdesk.server.log import setup_logging
from swarmdesk.server.managers.templates import ensure_system_templates
from swarmdesk.server.registry import ProcessRegistry
from swarmdesk.server.settings import SwarmSettings, get_settings

# ---------------------------------------------------------------------------
# Shared singletons initialised during lifespan
# ---------------------------------------------------------------------------
registry = ProcessRegistry()


def _auth_tokens(settings: SwarmSettings) -> dict[str, str]:
    """``token -> owner`` for every accepted bearer token."""
    auth_token = settings.resolve_auth_token()
    if not settings.auth_token:
        logger.warning("No SWARMDESK_AUTH_TOKEN set -- generated token: {}", auth_token)
    return {**settings.api_tokens, auth_token: settings.auth_owner}


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    logger.info("SwarmDesk starting (host={}, port={})", settings.host, settings.port)
    _app.state.auth_tokens = _auth_tokens(settings)

    # -- Database --------------------------------------------------------------
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        # Local single-file deployments migrate on startup; PostgreSQL runs `swarmdesk db upgrade`.
        await asyncio.to_thread(upgrade_database, settings.database_url, configure_logging=False)
    engine = create_engine(settings.database_url)
    _app.state.db_engine = engine
    _app.state.db_session_factory = create_session_factory(engine)
    async with _app.state.db_session_factory() as db:
        added = await ensure_system_templates(db)
    logger.info("Database: {} (seeded {} system templates)", url.render_as_string(hide_password=True), added)

    # -- SSE -------------------------------------------------------------------
    # Let SSE streams deliver their terminal event during shutdown instead of
    # being cut off immediately.
    AppStatus.disable_automatic_graceful_drain()

    # -- Runner ----------------------------------------------------------------
    _app.state.runner = SwarmRunner(
        settings=settings,
        session_factory=_app.state.db_session_factory,
        spawner=AsyncioSpawner(),
        credentials=EnvCredentialProvider(),
        registry=registry,
    )
    logger.info("Runner: {} {}", settings.cli_executable, settings.cli_name)

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("SwarmDesk shutting down (running_swarms={})", registry.active_count)

    # 1. Stop accepting new executions.
    registry.begin_shutdown()

    # 2. Wait for running swarm processes to exit on their own.
    if registry.active_count > 0:
        timeout = settings.graceful_shutdown_timeout
        logger.info("Waiting for {} swarm processes to finish (timeout={}s)...", registry.active_count, timeout)
        drained = await registry.wait_until_drained(timeout=timeout)
        if not drained:
            terminated = registry.terminate_all()
            logger.warning("Terminated {} swarm processes after timeout", terminated)
            await registry.wait_until_drained(timeout=5.0)

    # 3. Let the execution tasks record their outcome, then close SSE streams.
    await _app.state.runner.drain()
    AppStatus.should_exit = True

    await engine.dispose()
    logger.info("Database: disposed")


# ---------------------------------------------------------------------------
# Exception handlers -- domain errors become ``{error, details}`` bodies
# ---------------------------------------------------------------------------


async def _domain_error_handler(request: Request, exc: SwarmDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.title, "details": exc.message})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Validation error on {} {}: {}", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "details": "Request body or parameters failed validation",
            "errors": [
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", ""),
                    "type": err.get("type", ""),
                }
                for err in exc.errors()
            ],
        },
    )


async def _storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.opt(exception=exc).error("Database error on {} {}", request.method, request.url.path)
    error = StorageError(str(exc.__class__.__name__))
    return JSONResponse(status_code=error.status_code, content={"error": error.title, "details": error.message})


app = FastAPI(title="SwarmDesk", lifespan=lifespan)
app.state.db_engine = None
app.state.db_session_factory = None
app.state.runner = None
app.state.auth_tokens = {}

app.add_exception_handler(SwarmDeskError, _domain_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
app.add_exception_handler(SQLAlchemyError, _storage_error_handler)  # type: ignore[arg-type]

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from swarmdesk.server.routers.agents import router as agents_router  # noqa: E402
from swarmdesk.server.routers.memory import router as memory_router  # noqa: E402
from swarmdesk.server.routers.metrics import router as metrics_router  # noqa: E402
from swarmdesk.server.routers.swarm import router as swarm_router  # noqa: E402
from swarmdesk.server.routers.system import router as system_router  # noqa: E402
from swarmdesk.server.routers.templates import router as templates_router  # noqa: E402

api.include_router(agents_router)
api.include_router(swarm_router)
api.include_router(memory_router)
api.include_router(metrics_router)
api.include_router(templates_router)
api.include_router(system_router)

app.include_router(api)

# ---------------------------------------------------------------------------
# Static UI serving
# Resolved relative to CWD; override with SWARMDESK_UI_DIR.
# ---------------------------------------------------------------------------
_UI_DIR = Path(get_settings().ui_dir)

if _UI_DIR.is_dir():
    app.mount("/assets", StaticFiles(directory=_UI_DIR / "assets", check_dir=False), name="ui-assets")

    @app.get("/{full_path:path}")
    async def serve_spa(full_path: str) -> FileResponse:
        """Serve the SPA index.html for all unmatched routes (client-side routing)."""
        file_path = _UI_DIR / full_path
        if file_path.is_file():
            return FileResponse(file_path)
        return FileResponse(_UI_DIR / "index.html")
