import pytest
from fakeredis import FakeAsyncRedis

from lobby_backend.models.models import ClaimIdentity
from lobby_backend.services.broadcast_router import BroadcastRouter
from lobby_backend.services.connection_handler import ConnectionHandler
from lobby_backend.services.message_store import MessageStore
from lobby_backend.services.room_directory import RoomDirectory
from lobby_backend.services.session_registry import SessionRegistry
from tests.fakes import FakeWebSocket


@pytest.fixture
async def redis_client():
    client = FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def message_store(redis_client):
    return MessageStore(redis_client)


@pytest.fixture
def room_directory(redis_client, message_store):
    return RoomDirectory(redis_client, message_store)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def router(registry):
    return BroadcastRouter(registry)


@pytest.fixture
def connect(registry, room_directory, message_store, router):
    """
    Open a fake connection and return its handler.

    Pass an identity to have it claimed right away; the frames produced by
    connecting and claiming are cleared so tests start from a clean slate.
    """
    counter = {"n": 0}

    async def _connect(identity=None, page_size=50):
        counter["n"] += 1
        ws = FakeWebSocket()
        session = await registry.register(f"conn-{counter['n']}", ws)
        handler = ConnectionHandler(
            session=session,
            registry=registry,
            directory=room_directory,
            store=message_store,
            router=router,
            page_size=page_size,
        )
        if identity is not None:
            await handler.handle(ClaimIdentity(identity=identity))
            for other in registry.live_sessions():
                other.transport.clear()
        return handler

    return _connect
