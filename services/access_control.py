from enum import Enum

from services.errors import NotFoundOrForbidden


INTERVIEWER_ROLE = "Interviewer"
INTERVIEWEE_ROLE = "Interviewee"


class AccessMode(str, Enum):
    READ = "read"
    WRITE = "write"
    SHARE = "share"
    DELETE = "delete"
    ANALYZE = "analyze"


def _actor_id(actor) -> str:
    return str(actor["_id"])


def is_owner(actor, record) -> bool:
    return str(record.get("uploadedBy")) == _actor_id(actor)


def is_shared_with(actor, record) -> bool:
    actor_id = _actor_id(actor)
    return any(str(entry.get("userId")) == actor_id for entry in record.get("sharedWith") or [])


def can_access(actor, record, mode) -> bool:
    """Decide whether ``actor`` (a user document) may use ``record`` in ``mode``.

    read:    owner, a user in ``sharedWith``, or anyone when ``isPublic``
    write, share, delete: owner only, sharing never grants write access
    analyze: owner, or any user holding the Interviewer role regardless of
             ownership or sharing (platform-wide reviewer access)
    """
    mode = AccessMode(mode)
    if is_owner(actor, record):
        return True
    if mode is AccessMode.READ:
        return bool(record.get("isPublic")) or is_shared_with(actor, record)
    if mode is AccessMode.ANALYZE:
        return actor.get("role") == INTERVIEWER_ROLE
    return False


def require_access(actor, record, mode):
    """Return ``record`` or raise the same error a missing record would."""
    if record is None or not can_access(actor, record, mode):
        raise NotFoundOrForbidden()
    return record
