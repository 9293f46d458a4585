import pytest

from lobby_backend.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from lobby_backend.core.redis_keys import ROOM_MEMBERS_KEY, ROOM_META_KEY, ROOMS_KEY
from lobby_backend.models.models import ChatMessage
from lobby_backend.services.room_directory import RoomDirectory


def room_msg(room_id, author, body):
    return ChatMessage(author=author, body=body, room_id=room_id)


async def test_create_registers_owner_as_first_member(room_directory, redis_client):
    room = await room_directory.create("team1", "Team One", "alice")

    assert room.id == "team1"
    assert room.name == "Team One"
    assert room.owner == "alice"
    assert room.members == ["alice"]
    assert room.created_at
    assert await redis_client.sismember(ROOMS_KEY, "team1")
    assert await room_directory.is_member("team1", "alice")


async def test_display_name_defaults_to_id(room_directory):
    room = await room_directory.create(" team1 ", None, "alice")

    assert room.id == "team1"
    assert room.name == "team1"


async def test_create_twice_conflicts(room_directory):
    await room_directory.create("team1", None, "alice")

    with pytest.raises(ConflictError) as exc:
        await room_directory.create("team1", None, "bob")

    assert exc.value.event == "room_exists"
    assert (await room_directory.get("team1")).owner == "alice"


async def test_create_rejects_malformed_id(room_directory):
    with pytest.raises(ValidationError):
        await room_directory.create("bad id!", None, "alice")
    assert await room_directory.count() == 0


async def test_join_unknown_room(room_directory):
    with pytest.raises(NotFoundError):
        await room_directory.join("nowhere", "bob")


async def test_join_is_idempotent_and_returns_history(room_directory):
    await room_directory.create("team1", "Team One", "alice")
    await room_directory.post_message("team1", room_msg("team1", "alice", "one"))
    await room_directory.post_message("team1", room_msg("team1", "alice", "two"))

    room, history = await room_directory.join("team1", "bob")
    again, history_again = await room_directory.join("team1", "bob")

    assert room.name == "Team One"
    assert [m.body for m in history] == ["one", "two"]
    assert [m.body for m in history_again] == ["one", "two"]
    assert again.members == ["alice", "bob"]


async def test_leave_reports_membership(room_directory):
    await room_directory.create("team1", None, "alice")
    await room_directory.join("team1", "bob")

    assert await room_directory.leave("team1", "bob") == "ok"
    assert await room_directory.leave("team1", "bob") == "not_member"
    assert await room_directory.leave("team1", "carol") == "not_member"
    assert not await room_directory.is_member("team1", "bob")


async def test_non_member_cannot_post(room_directory, message_store):
    await room_directory.create("team1", None, "alice")

    with pytest.raises(AuthorizationError) as exc:
        await room_directory.post_message("team1", room_msg("team1", "mallory", "spam"))

    assert exc.value.event == "not_member"
    assert await message_store.count("team1") == 0


async def test_clear_history_keeps_room_and_members(room_directory, message_store):
    await room_directory.create("team1", None, "alice")
    await room_directory.join("team1", "bob")
    await room_directory.post_message("team1", room_msg("team1", "alice", "hi"))

    await room_directory.clear_history("team1", "bob")

    assert await message_store.read_all("team1") == []
    room = await room_directory.get("team1")
    assert room.members == ["alice", "bob"]
    assert room.owner == "alice"


async def test_clear_history_requires_membership(room_directory, message_store):
    await room_directory.create("team1", None, "alice")
    await room_directory.post_message("team1", room_msg("team1", "alice", "keep me"))

    with pytest.raises(AuthorizationError):
        await room_directory.clear_history("team1", "mallory")

    assert await message_store.count("team1") == 1


async def test_only_owner_can_delete(room_directory):
    await room_directory.create("team1", None, "alice")
    await room_directory.join("team1", "bob")

    with pytest.raises(AuthorizationError) as exc:
        await room_directory.delete("team1", "bob")

    assert exc.value.event == "not_owner"
    assert await room_directory.exists("team1")


async def test_delete_tears_everything_down(room_directory, message_store, redis_client):
    await room_directory.create("team1", None, "alice")
    await room_directory.join("team1", "bob")
    await room_directory.post_message("team1", room_msg("team1", "bob", "bye"))

    deleted = await room_directory.delete("team1", "alice")

    assert deleted.members == ["alice", "bob"]
    assert not await redis_client.exists(ROOM_META_KEY.format(room_id="team1"))
    assert not await redis_client.exists(ROOM_MEMBERS_KEY.format(room_id="team1"))
    assert await message_store.count("team1") == 0
    with pytest.raises(NotFoundError):
        await room_directory.join("team1", "bob")

    recreated = await room_directory.create("team1", None, "carol")
    assert recreated.owner == "carol"
    assert (await room_directory.get("team1")).members == ["carol"]


async def test_delete_unknown_room(room_directory):
    with pytest.raises(NotFoundError):
        await room_directory.delete("ghost", "alice")


async def test_rooms_survive_a_restart(room_directory, redis_client, message_store):
    await room_directory.create("team1", "Team One", "alice")
    await room_directory.join("team1", "bob")

    reloaded = RoomDirectory(redis_client, message_store)

    room = await reloaded.get("team1")
    assert room.name == "Team One"
    assert await reloaded.is_member("team1", "bob")


async def test_posts_to_missing_rooms_leave_no_locks(room_directory, message_store):
    for i in range(100):
        with pytest.raises(AuthorizationError):
            await room_directory.post_message(f"nope{i}", room_msg(f"nope{i}", "alice", "hello?"))
        with pytest.raises(AuthorizationError):
            await room_directory.clear_history(f"nope{i}", "alice")

    assert message_store._locks == {}


async def test_deleted_room_leaves_no_lock(room_directory, message_store):
    await room_directory.create("team1", None, "alice")
    await room_directory.post_message("team1", room_msg("team1", "alice", "hi"))

    await room_directory.delete("team1", "alice")

    assert "team1" not in message_store._locks
