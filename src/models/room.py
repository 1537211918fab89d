"""Room table for the coach lighting system."""

# Room codes reported by the controller in each light object's room_loc field
DEFAULT_ROOM_NAMES: dict[int, str] = {
    0: "Living Room",
    1: "Kitchen",
    2: "Bedroom",
    3: "Bath",
    4: "Half Bath",
    5: "Exterior",
}

UNKNOWN_ROOM = "Unknown"


def room_name(room: int | None, names: dict[int, str] | None = None) -> str:
    """Resolve a room code to its display name."""
    table = DEFAULT_ROOM_NAMES if names is None else names
    if room is None:
        return UNKNOWN_ROOM
    return table.get(room, UNKNOWN_ROOM)
