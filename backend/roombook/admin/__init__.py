from roombook.admin.rooms import (
    ToggleRoomSyncArgs,
    find_room,
    list_rooms,
    list_sync_enabled_rooms,
    serialize_room,
    toggle_room_sync,
)

__all__ = [
    "ToggleRoomSyncArgs",
    "find_room",
    "list_rooms",
    "list_sync_enabled_rooms",
    "serialize_room",
    "toggle_room_sync",
]
