# lobby_backend/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lobby_backend.core import state
from lobby_backend.core.config import settings
from lobby_backend.core.logging import setup_logging, get_logger
from lobby_backend.services.redis_store import AsyncRedisStore
from lobby_backend.api.routes import root, health
from lobby_backend.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Lobby Chat")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - lobby and private rooms enabled")

    redis_store = AsyncRedisStore()
    client = await redis_store.connect()

    # Store globally
    state.redis_store = redis_store
    state.init_state(client)


@app.on_event("shutdown")
async def on_shutdown():
    if state.redis_store is not None:
        await state.redis_store.close()
        state.redis_store = None


def run():
    import uvicorn
    uvicorn.run("lobby_backend.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
