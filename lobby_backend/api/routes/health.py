# lobby_backend/api/routes/health.py

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from lobby_backend.core import state
from lobby_backend.core.errors import PersistenceError

router = APIRouter()


@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.
    Answers 503 with status "degraded" when Redis cannot be reached.

    Returns:
        dict: Status, connection count, identified sessions, room count
    """
    body = {
        "status": "healthy",
        "connections": len(state.session_registry),
        "identified": state.session_registry.identified_count,
        "rooms": None,
    }

    redis_ok = state.redis_store is not None and await state.redis_store.ping()
    if redis_ok and state.room_directory is not None:
        try:
            body["rooms"] = await state.room_directory.count()
        except PersistenceError:
            redis_ok = False

    if not redis_ok:
        body["status"] = "degraded"
        return JSONResponse(status_code=503, content=body)
    return body
