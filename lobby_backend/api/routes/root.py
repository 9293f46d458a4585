# lobby_backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Lobby Chat",
        "version": "1.0",
        "features": ["global_lobby", "private_rooms", "history", "pagination"],
        "endpoints": {
            "websocket": "/ws",
            "health": "/health",
        },
    }
