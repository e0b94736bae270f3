"""
FastAPI side-server for the prayer board.

Central endpoints are GET /api/components and GET /api/tasks. Every package under
prayer_board.plugins that has an `api` module with get_router(board_app) is mounted
at /api/components/<package>/. run_api_server() serves it from a daemon thread.
"""
import importlib
import logging
import pkgutil
import threading
from datetime import datetime
from typing import Any, Iterator, List, Optional, Tuple

from fastapi import APIRouter, FastAPI
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PLUGIN_PACKAGE = "prayer_board.plugins"


class ComponentSummary(BaseModel):
    name: str
    status: str
    error: Optional[str] = None
    enabled: bool = True


class ActiveTask(BaseModel):
    name: str
    scheduled_at: Optional[datetime] = None


class TasksResponse(BaseModel):
    active_tasks: List[ActiveTask]


def discover_routers(board_app: Any) -> Iterator[Tuple[str, APIRouter]]:
    """Yield (plugin name, router) for each plugin package exposing api.get_router."""
    package = importlib.import_module(PLUGIN_PACKAGE)
    for module_info in pkgutil.iter_modules(package.__path__):
        if not module_info.ispkg:
            continue
        name = module_info.name
        try:
            api_module = importlib.import_module(f"{PLUGIN_PACKAGE}.{name}.api")
        except ModuleNotFoundError:
            logger.debug(f"Plugin {name} has no API module")
            continue

        get_router = getattr(api_module, "get_router", None)
        if not callable(get_router):
            continue
        try:
            router = get_router(board_app)
        except Exception as e:
            logger.warning(f"Failed to build API router for plugin {name}: {e}", exc_info=True)
            continue
        if router is not None:
            yield name, router


def create_app(board_app: Any) -> FastAPI:
    """Create FastAPI app with routes that read from the given PrayerBoardApp."""
    app = FastAPI(title="Prayer Board API", description="Prayer times, countdown and Ramadan calendar")

    @app.get("/api/components", response_model=List[ComponentSummary])
    def list_components() -> List[ComponentSummary]:
        """Sessions with their load status and last error."""
        return [ComponentSummary(**summary) for summary in board_app.session_summaries()]

    @app.get("/api/tasks", response_model=TasksResponse)
    def list_tasks() -> TasksResponse:
        """In-flight tasks on the event loop."""
        return TasksResponse(active_tasks=[ActiveTask(**t) for t in board_app.task_manager.get_active_tasks()])

    for name, router in discover_routers(board_app):
        app.include_router(router, prefix=f"/api/components/{name}")
        logger.debug(f"Mounted API routes for plugin {name}")

    return app


def run_api_server(board_app: Any) -> Optional[threading.Thread]:
    """
    Start uvicorn in a daemon thread when api.enabled is true.
    Reads api.host (default 127.0.0.1) and api.port (default 8765).
    """
    api_config = board_app.config.get_section("api")
    if not api_config.get("enabled", False):
        logger.info("API server not started: set api.enabled to true in your config file to enable.")
        return None

    import uvicorn

    host = api_config.get("host", "127.0.0.1")
    port = int(api_config.get("port", 8765))
    fastapi_app = create_app(board_app)

    def serve():
        try:
            logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
            uvicorn.run(fastapi_app, host=host, port=port, log_level="warning")
        except Exception as e:
            logger.exception(f"API server thread failed: {e}")

    thread = threading.Thread(target=serve, name="api-server", daemon=True)
    thread.start()
    return thread
