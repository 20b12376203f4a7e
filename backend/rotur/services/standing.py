# rotur/services/standing.py
"""
Disciplinary standing.

Standing moves between good, warning, suspended and banned. Warnings and
suspensions carry a recovery instant; a periodic check steps users whose
instant has passed one level back towards good.
"""
import logging

from rotur.core.errors import BadInput, NotFound, PreconditionFailed
from rotur.core.timeutil import now_s
from rotur.models import user as U

logger = logging.getLogger("uvicorn.error")

DAY = 24 * 60 * 60
RECOVERY_DELAY = {
    U.STANDING_WARNING: 7 * DAY,
    U.STANDING_SUSPENDED: 30 * DAY,
}
# One step of recovery, used both by admins and by the periodic check.
RECOVERY_STEP = {
    U.STANDING_SUSPENDED: U.STANDING_WARNING,
    U.STANDING_BANNED: U.STANDING_WARNING,
    U.STANDING_WARNING: U.STANDING_GOOD,
}


def apply_standing(user: dict, level: str, reason: str, admin_id: str, now: int) -> bool:
    """Set a user's standing in place and log it to their history. No-op for the current level."""
    current = U.get_standing(user)
    if current == level:
        return False
    user["sys.standing"] = level
    history = user.get("sys.standing_history")
    if not isinstance(history, list):
        history = []
    history.append({
        "level": level,
        "previous": current,
        "reason": reason,
        "admin_id": admin_id,
        "timestamp": now,
    })
    user["sys.standing_history"] = history
    delay = RECOVERY_DELAY.get(level)
    user["sys.standing_recover_at"] = now + delay if delay else None
    if level == U.STANDING_BANNED:
        user["sys.banned"] = True
    elif user.get("sys.banned"):
        user.pop("sys.banned")
    return True


def set_standing(store, username: str, level: str, reason: str, admin_id: str = "unknown", now: int | None = None) -> dict:
    if level not in U.STANDINGS:
        raise BadInput("Invalid standing level")
    if not reason:
        raise BadInput("reason is required")
    now = now if now is not None else now_s()
    with store.users.write() as users:
        user = users.get(username.lower())
        if user is None:
            raise NotFound("user not found")
        apply_standing(user, level, reason, admin_id, now)
        return {"username": U.username_of(user), "standing": U.get_standing(user)}


def recover_standing(store, username: str, reason: str, admin_id: str = "unknown", now: int | None = None) -> dict:
    if not reason:
        raise BadInput("reason is required")
    now = now if now is not None else now_s()
    with store.users.write() as users:
        user = users.get(username.lower())
        if user is None:
            raise NotFound("user not found")
        current = U.get_standing(user)
        if current == U.STANDING_GOOD:
            raise PreconditionFailed("user is already in good standing")
        new_level = RECOVERY_STEP[current]
        apply_standing(user, new_level, reason, admin_id, now)
        return {"username": U.username_of(user), "previous_standing": current, "new_standing": new_level}


def standing_history(store, username: str) -> dict:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("user not found")
    history = user.get("sys.standing_history")
    return {
        "username": U.username_of(user),
        "standing": U.get_standing(user),
        "history": history if isinstance(history, list) else [],
    }


def recover_due(store, now: int | None = None) -> int:
    """Step every user whose recovery instant has passed; returns how many moved."""
    now = now if now is not None else now_s()

    def due(user: dict) -> bool:
        recover_at = user.get("sys.standing_recover_at")
        if not isinstance(recover_at, (int, float)) or recover_at <= 0 or recover_at >= now:
            return False
        return U.get_standing(user) in (U.STANDING_WARNING, U.STANDING_SUSPENDED)

    if not store.users.scan(due):
        return 0
    moved = 0
    with store.users.write() as users:
        for user in users.values():
            if due(user):
                apply_standing(user, RECOVERY_STEP[U.get_standing(user)], "automatic recovery", "system", now)
                moved += 1
    if moved:
        logger.info("[standing] recovered %d users", moved)
    return moved
