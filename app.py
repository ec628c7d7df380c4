from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers.rooms import rooms_router
from chat_service import ChatService, build_chat_service
from constants import SWEEP_INTERVAL_SECONDS
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
from logging_config import get_logger

logger = get_logger(__name__)


async def sweep_periodically(service: ChatService, interval: float):
    """Background task that removes expired rooms and sessions every `interval` seconds."""
    logger.info(f"Starting background sweeper every {interval}s")
    loop = asyncio.get_running_loop()
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                # store calls block (locks / Redis), keep them off the event loop
                removed = await loop.run_in_executor(None, service.sweep)
                logger.debug(f"Background sweep removed {removed} room(s)")
            except Exception as e:
                logger.error(f"Background sweep failed: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Background sweeper cancelled")
        raise


def create_app(chat_service: Optional[ChatService] = None, sweep_interval: float = SWEEP_INTERVAL_SECONDS) -> FastAPI:
    service = chat_service or build_chat_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if sweep_interval > 0:
            task = asyncio.create_task(sweep_periodically(service, sweep_interval))
        yield
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    app = FastAPI(title="Ephemeral chat rooms", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allow all HTTP methods
        allow_headers=["*"],  # Allow all headers
    )

    app.state.chat_service = service
    app.include_router(rooms_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "backend": service.rooms.name}

    logger.info("FastAPI application initialized")
    return app


app = create_app()
