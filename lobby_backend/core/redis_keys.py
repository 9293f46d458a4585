GLOBAL_DESTINATION = "@global"  # never a valid room id

GLOBAL_MESSAGES_KEY = "chat_messages"  # list - lobby log, newest first
ROOMS_KEY = "rooms"  # set - every room id
ROOM_META_KEY = "room:{room_id}:meta"  # hash - name, owner, created_at
ROOM_MEMBERS_KEY = "room:{room_id}:members"  # set - member identities
ROOM_MESSAGES_KEY = "room:{room_id}:messages"  # list - room log, newest first


def messages_key(destination: str) -> str:
    if destination == GLOBAL_DESTINATION:
        return GLOBAL_MESSAGES_KEY
    return ROOM_MESSAGES_KEY.format(room_id=destination)
