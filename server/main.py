"""FastAPI polling server for the Phonics card game."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import config
from logging_config import setup_logging
from middleware import RequestIDMiddleware
from routers.games import router as games_router
from routers.health import router as health_router
from routers.session import router as session_router
from services.game_manager import GameManager, get_game_manager, set_game_manager
from stores import create_store

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


_cleanup_task: Optional[asyncio.Task] = None


async def _periodic_cleanup():
    """Periodic task deleting abandoned lobbies and finished games."""
    while True:
        try:
            await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
            await get_game_manager().cleanup()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Stale game cleanup failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler: open the store and start housekeeping."""
    global _cleanup_task

    try:
        store = await create_store(config)
    except Exception as e:
        logger.error(f"Failed to initialize game store: {e}")
        raise
    set_game_manager(GameManager(store))

    _cleanup_task = asyncio.create_task(_periodic_cleanup())
    logger.info(f"Phonics server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    _cleanup_task.cancel()
    try:
        await _cleanup_task
    except asyncio.CancelledError:
        pass
    _cleanup_task = None

    await store.close()
    set_game_manager(None)
    logger.info("Shutdown complete")


app = FastAPI(
    title="Super Phonics Cards",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

# Request ID middleware (generates/propagates request IDs)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Anything the routers didn't turn into a result (e.g. storage down)."""
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


app.include_router(games_router)
app.include_router(session_router)
app.include_router(health_router)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Phonics server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
