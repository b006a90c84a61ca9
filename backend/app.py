import asyncio
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from difficulty.routes import router as difficulty_router
from difficulty.routes import controller

from shared.config.app_config import DDA_PURGE_INTERVAL_SECONDS
from shared.config.logging import configure_logging, get_logger

configure_logging()
logger = get_logger("app")


def run_startup_task(name: str, initializer) -> None:
    try:
        logger.info("Initializing %s...", name)
        initializer()
        logger.info("%s initialized.", name)
    except Exception:
        logger.exception("Error initializing %s.", name)


async def purge_loop(interval_seconds: float) -> None:
    """Periodically evict idle session state so per-session memory stays bounded."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = await asyncio.to_thread(controller.purge_expired)
            logger.debug("Periodic purge: %s", purged)
        except Exception:
            logger.exception("Periodic purge failed")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("Starting up combat difficulty controller...")
    for name, initializer in (("session state", controller.purge_expired),):
        run_startup_task(name, initializer)
    purger = asyncio.create_task(purge_loop(DDA_PURGE_INTERVAL_SECONDS))
    yield
    purger.cancel()
    logger.info("Combat difficulty controller shut down")


app = FastAPI(title="Combat Difficulty Controller", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(difficulty_router)

if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
