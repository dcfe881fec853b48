"""Session identifiers: 26-character, time-sortable ULIDs."""

from ulid import monotonic as ulid


def new_session_id() -> str:
    """Return a new ULID, monotonic for ids generated within one millisecond."""
    return ulid.new().str
