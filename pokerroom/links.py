"""Room addressing: the room id travels in the ``room`` query parameter."""

import secrets
import string
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

ROOM_PARAM = "room"
ROOM_ID_LENGTH = 7
_ALPHABET = string.digits + string.ascii_lowercase


def generate_room_id() -> str:
    """Short base-36 room identifier."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(ROOM_ID_LENGTH))


def room_id_from_url(url: str) -> str | None:
    values = parse_qs(urlsplit(url).query).get(ROOM_PARAM)
    if not values or not values[0].strip():
        return None
    return values[0].strip()


def with_room_id(url: str, room_id: str) -> str:
    """Set the room parameter, keeping any other query parameters."""
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    query[ROOM_PARAM] = [room_id]
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def resolve_room_url(url: str) -> tuple[str, str]:
    """
    Find the room a URL points to, assigning a new one if it has none.

    Args:
        url: The session's address

    Returns:
        Tuple of (room_id, url); the URL is rewritten only when a room id
        had to be generated
    """
    room_id = room_id_from_url(url)
    if room_id:
        return room_id, url
    room_id = generate_room_id()
    return room_id, with_room_id(url, room_id)


def invite_link(url: str) -> str:
    """The link to share: the current room URL, verbatim."""
    return url


def new_game_url(url: str) -> str:
    """Address of a brand new room."""
    return with_room_id(url, generate_room_id())
