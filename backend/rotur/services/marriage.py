# rotur/services/marriage.py
"""
Marriage between two accounts.

Both partners carry a mirrored `sys.marriage` record
`{status, partner, timestamp, proposer}`; `status` is "proposed" while the
proposal is open and "married" once accepted. Rejecting, cancelling and
divorcing remove the record from both sides, so an account without one is
single.
"""
import logging

from rotur.core.errors import BadInput, NotFound, PreconditionFailed
from rotur.core.timeutil import now_ms
from rotur.models import user as U
from rotur.services.events import add_user_event

logger = logging.getLogger("uvicorn.error")

FIELD = "sys.marriage"
PROPOSED = "proposed"
MARRIED = "married"


def _single() -> dict:
    return {"status": "single", "partner": "", "timestamp": 0, "proposer": ""}


def _record(user: dict) -> dict | None:
    record = user.get(FIELD)
    if not isinstance(record, dict) or record.get("status") not in (PROPOSED, MARRIED):
        return None
    return record


def _pending(users: dict, username: str) -> tuple[dict, dict]:
    """The caller's open proposal and the other side's account."""
    user = users.get(username)
    if user is None:
        raise NotFound("User not found")
    record = _record(user)
    if record is None or record["status"] != PROPOSED:
        raise PreconditionFailed("No pending proposal", code="NO_PENDING_PROPOSAL")
    if not isinstance(record.get("partner"), str) or not isinstance(record.get("proposer"), str):
        raise PreconditionFailed("Invalid proposal data")
    return record, users.get(record["partner"].lower())


def _end(user: dict, partner: dict | None) -> None:
    user.pop(FIELD, None)
    if partner is not None:
        partner.pop(FIELD, None)


def get_status(store, username: str) -> dict:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    return _record(user) or _single()


def propose(store, proposer: str, target: str, now: int | None = None) -> dict:
    """
    Propose to `target`. Neither side may be married or already in a proposal.

    Raises:
        BadInput: Empty target or proposing to yourself
        NotFound: Either account is missing
        PreconditionFailed: Either side is taken, or the target blocked the proposer
    """
    proposer, target = proposer.lower(), (target or "").lower()
    if not target:
        raise BadInput("Target username is required")
    if proposer == target:
        raise BadInput("Cannot propose to yourself")
    now = now if now is not None else now_ms()
    with store.users.write() as users:
        me = users.get(proposer)
        if me is None:
            raise NotFound("Proposer not found")
        them = users.get(target)
        if them is None:
            raise NotFound("Target user not found")
        if _record(me) is not None:
            raise PreconditionFailed("You are already married or have a pending proposal")
        if _record(them) is not None:
            raise PreconditionFailed("Target user is already married or has a pending proposal")
        if proposer in U.get_set(them, "sys.blocked"):
            raise PreconditionFailed("You cant propose to this user")
        me[FIELD] = {"status": PROPOSED, "partner": target, "timestamp": now, "proposer": proposer}
        them[FIELD] = {"status": PROPOSED, "partner": proposer, "timestamp": now, "proposer": proposer}
    add_user_event(store, target, "marriage_proposal", {"username": proposer})
    return {"message": "Marriage proposal sent successfully"}


def accept(store, username: str, now: int | None = None) -> dict:
    username = username.lower()
    now = now if now is not None else now_ms()
    with store.users.write() as users:
        record, partner = _pending(users, username)
        proposer = record["proposer"].lower()
        if proposer == username:
            raise PreconditionFailed("Cannot accept your own proposal")
        if partner is None:
            raise NotFound("Partner not found")
        partner_name = record["partner"].lower()
        users[username][FIELD] = {"status": MARRIED, "partner": partner_name, "timestamp": now, "proposer": proposer}
        partner[FIELD] = {"status": MARRIED, "partner": username, "timestamp": now, "proposer": proposer}
    add_user_event(store, partner_name, "marriage_accepted", {"username": username})
    logger.info("[marriage] %s and %s are married", username, partner_name)
    return {"message": "Marriage accepted successfully"}


def reject(store, username: str) -> dict:
    """Turn down a proposal made to the caller."""
    username = username.lower()
    with store.users.write() as users:
        record, partner = _pending(users, username)
        if record["proposer"].lower() == username:
            raise PreconditionFailed("Cannot reject your own proposal - use cancel instead")
        _end(users[username], partner)
    return {"message": "Marriage proposal rejected"}


def cancel(store, username: str) -> dict:
    """Withdraw a proposal the caller made."""
    username = username.lower()
    with store.users.write() as users:
        record, partner = _pending(users, username)
        if record["proposer"].lower() != username:
            raise PreconditionFailed("Can only cancel your own proposal")
        _end(users[username], partner)
    return {"message": "Marriage proposal cancelled"}


def divorce(store, username: str) -> dict:
    username = username.lower()
    with store.users.write() as users:
        user = users.get(username)
        if user is None:
            raise NotFound("User not found")
        record = _record(user)
        if record is None or record["status"] != MARRIED:
            raise PreconditionFailed("Not married", code="NOT_MARRIED")
        partner_name = str(record.get("partner", "")).lower()
        _end(user, users.get(partner_name))
    logger.info("[marriage] %s and %s divorced", username, partner_name)
    return {"message": "Divorce processed successfully"}


def forget(users: dict, username: str) -> None:
    """Drop every marriage record naming `username`; caller holds the users write lock."""
    username = username.lower()
    for other in users.values():
        record = _record(other)
        if record is not None and str(record.get("partner", "")).lower() == username:
            other.pop(FIELD, None)
