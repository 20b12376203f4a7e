# rotur/services/groups.py
"""
Groups: membership, roles with permissions, announcements and tips.

The groups collection maps a lowercased tag to one group record:
    {"group": {...}, "members": [...], "roles": [...],
     "announcements": [...], "events": {}, "tips": []}
Members reference users by `sys.id`, so renames and soft bans never orphan a
membership. Exactly one "Owner" role exists per group and only the owner
holds it.
"""
import copy
import logging
import re

from rotur.core import money
from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed
from rotur.core.security import generate_id
from rotur.core.timeutil import now_s
from rotur.models import user as U

logger = logging.getLogger("uvicorn.error")

TAG_RE = re.compile(r"^[a-zA-Z0-9]+$")
MAX_TAG = 20
MAX_NAME = 50
MAX_DESCRIPTION = 500
MAX_ROLE_DESCRIPTION = 200
MAX_TITLE = 100
MAX_BODY = 2000

JOIN_OPEN, JOIN_REQUEST, JOIN_INVITE = "OPEN", "REQUEST", "INVITE"
JOIN_POLICIES = (JOIN_OPEN, JOIN_REQUEST, JOIN_INVITE)

OWNER_ROLE = "Owner"
MEMBER_ROLE = "Member"

PERMISSIONS = (
    "groups.manage",
    "groups.members.invite",
    "groups.members.remove",
    "groups.roles.manage",
    "groups.roles.assign",
    "groups.announcements.send",
    "groups.events.manage",
    "groups.events.publish",
    "groups.tips.manage",
    "groups.group.edit",
)


# ==============================================================================
# I. Helpers
# ==============================================================================
def _user_id(store, username: str) -> str:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    if not user.get("sys.id"):
        raise PreconditionFailed("Account has no id")
    return str(user["sys.id"])


def _find(groups: dict, tag: str) -> dict:
    if not tag:
        raise BadInput("Group tag is required")
    data = groups.get(tag.lower())
    if data is None:
        raise NotFound("Group not found")
    return data


def _member(data: dict, user_id: str) -> dict | None:
    for member in data.get("members", []):
        if member.get("user_id") == user_id:
            return member
    return None


def _role(data: dict, role_id: str) -> dict | None:
    for role in data.get("roles", []):
        if role.get("id") == role_id:
            return role
    return None



def has_permission(data: dict, user_id: str, permission: str) -> bool:
    """Owner role grants everything; otherwise any held role must list the permission."""
    member = _member(data, user_id)
    if member is None:
        return False
    for role_id in member.get("role_ids", []):
        role = _role(data, role_id)
        if role is None:
            continue
        if role.get("name") == OWNER_ROLE or permission in role.get("permissions", []):
            return True
    return False


def _require(data: dict, user_id: str, permission: str, message: str) -> None:
    if not has_permission(data, user_id, permission):
        raise Forbidden(message)


def _public(data: dict) -> dict:
    out = dict(data["group"])
    out["member_count"] = len(data.get("members", []))
    return out


def _url(value: str, label: str) -> str:
    value = value or ""
    if value and not value.startswith(("http://", "https://")):
        raise BadInput(f"{label} must be a valid URL")
    return value


# ==============================================================================
# II. Groups
# ==============================================================================
def create_group(
    store,
    username: str,
    tag: str,
    name: str,
    description: str = "",
    icon_url: str = "",
    banner_url: str = "",
    public: bool = False,
    join_policy: str = JOIN_OPEN,
    now: int | None = None,
) -> dict:
    """
    Create a group owned by `username`.

    Raises:
        BadInput: Bad tag, name, description, URL or join policy
        Conflict: Tag already taken
        PreconditionFailed: The caller already owns a group
    """
    if not tag:
        raise BadInput("Tag is required")
    if len(tag) > MAX_TAG:
        raise BadInput("Tag length exceeded")
    if not TAG_RE.match(tag):
        raise BadInput("Tag must be alphanumeric only")
    if not name:
        raise BadInput("Name is required")
    if len(name) > MAX_NAME:
        raise BadInput("Name length exceeded")
    if len(description or "") > MAX_DESCRIPTION:
        raise BadInput("Description length exceeded")
    icon_url = _url(icon_url, "Icon")
    banner_url = _url(banner_url, "Banner")
    join_policy = (join_policy or JOIN_OPEN).upper()
    if join_policy not in JOIN_POLICIES:
        raise BadInput("Invalid join policy")

    owner_id = _user_id(store, username)
    now = now if now is not None else now_s()
    owner_role = {
        "id": generate_id(), "group_tag": tag, "name": OWNER_ROLE, "description": "Group owner",
        "assign_on_join": False, "self_assignable": False, "benefits": [], "permissions": list(PERMISSIONS),
    }
    member_role = {
        "id": generate_id(), "group_tag": tag, "name": MEMBER_ROLE, "description": "Regular group member",
        "assign_on_join": True, "self_assignable": False, "benefits": [], "permissions": [],
    }
    data = {
        "group": {
            "id": generate_id(),
            "tag": tag,
            "name": name,
            "description": description or "",
            "icon_url": icon_url,
            "banner_url": banner_url,
            "owner_user_id": owner_id,
            "public": bool(public),
            "join_policy": join_policy,
            "created_at": now,
            "credits_balance": 0.0,
        },
        "members": [{
            "id": generate_id(), "group_tag": tag, "user_id": owner_id,
            "role_ids": [owner_role["id"], member_role["id"]], "joined_at": now,
            "muted_announcements": False,
        }],
        "roles": [owner_role, member_role],
        "announcements": [],
        "events": {},
        "tips": [],
    }
    with store.groups.write() as groups:
        if tag.lower() in groups:
            raise Conflict("Group with this tag already exists", code="GROUP_TAG_EXISTS")
        if any(g["group"].get("owner_user_id") == owner_id for g in groups.values()):
            raise PreconditionFailed("You already own a group")
        groups[tag.lower()] = data
    logger.info("[groups] %s created group %s", username, tag)
    return _public(data)


def get_group(store, tag: str) -> dict:
    with store.groups.read() as groups:
        return copy.deepcopy(_public(_find(groups, tag)))


def search_groups(store, query: str) -> list[dict]:
    if not query:
        raise BadInput("Query is required")
    needle = query.lower()
    with store.groups.read() as groups:
        return [
            copy.deepcopy(_public(data))
            for data in groups.values()
            if data["group"].get("public")
            and (needle in str(data["group"].get("name", "")).lower()
                 or needle in str(data["group"].get("description", "")).lower())
        ]


def my_groups(store, username: str) -> list[dict]:
    user_id = _user_id(store, username)
    with store.groups.read() as groups:
        return [copy.deepcopy(_public(data)) for data in groups.values() if _member(data, user_id)]


def join_group(store, username: str, tag: str, now: int | None = None) -> dict:
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        group = data["group"]
        if not group.get("public"):
            raise Forbidden("Group is private")
        if _member(data, user_id):
            raise PreconditionFailed("You are already a member of this group")
        if group.get("join_policy") == JOIN_INVITE:
            raise Forbidden("This group is invite-only")
        if group.get("join_policy") == JOIN_REQUEST:
            raise PreconditionFailed("Join requests are not supported")
        role_ids = [r["id"] for r in data.get("roles", []) if r.get("assign_on_join") and r.get("name") != OWNER_ROLE]
        data["members"].append({
            "id": generate_id(), "group_tag": group["tag"], "user_id": user_id, "role_ids": role_ids,
            "joined_at": now if now is not None else now_s(), "muted_announcements": False,
        })
        return copy.deepcopy(_public(data))


def leave_group(store, username: str, tag: str) -> dict:
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        if data["group"].get("owner_user_id") == user_id:
            raise PreconditionFailed("You cannot leave the group you own")
        if _member(data, user_id) is None:
            raise PreconditionFailed("You are not a member of this group")
        data["members"] = [m for m in data["members"] if m.get("user_id") != user_id]
        return copy.deepcopy(_public(data))


def kick_member(store, username: str, tag: str, target: str) -> dict:
    user_id = _user_id(store, username)
    target_id = _user_id(store, target)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.members.remove", "You don't have permission to remove members")
        if data["group"].get("owner_user_id") == target_id:
            raise PreconditionFailed("The group owner cannot be removed")
        if _member(data, target_id) is None:
            raise NotFound("User is not a member of this group")
        data["members"] = [m for m in data["members"] if m.get("user_id") != target_id]
        return copy.deepcopy(_public(data))


def update_group(store, username: str, tag: str, changes: dict) -> dict:
    """Owner edit of description, icon, banner, visibility or join policy."""
    user_id = _user_id(store, username)
    if not isinstance(changes, dict):
        raise BadInput("Invalid request body")
    with store.groups.write() as groups:
        data = _find(groups, tag)
        group = data["group"]
        if group.get("owner_user_id") != user_id:
            raise Forbidden("You are not authorized to update this group")
        if isinstance(changes.get("name"), str):
            if not changes["name"] or len(changes["name"]) > MAX_NAME:
                raise BadInput("Invalid name")
            group["name"] = changes["name"]
        if isinstance(changes.get("description"), str):
            if len(changes["description"]) > MAX_DESCRIPTION:
                raise BadInput("Description length exceeded")
            group["description"] = changes["description"]
        for field, label in (("icon_url", "Icon"), ("banner_url", "Banner")):
            if isinstance(changes.get(field), str):
                group[field] = _url(changes[field], label)
        if isinstance(changes.get("public"), bool):
            group["public"] = changes["public"]
        if isinstance(changes.get("join_policy"), str):
            policy = changes["join_policy"].upper()
            if policy not in JOIN_POLICIES:
                raise BadInput("Invalid join policy")
            group["join_policy"] = policy
        return copy.deepcopy(_public(data))


def delete_group(store, username: str, tag: str) -> None:
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        if data["group"].get("owner_user_id") != user_id:
            raise Forbidden("You are not authorized to delete this group")
        del groups[tag.lower()]
    logger.info("[groups] %s deleted group %s", username, tag)


def members_of(store, tag: str) -> list[dict]:
    with store.groups.read() as groups:
        return copy.deepcopy(_find(groups, tag).get("members", []))


# ==============================================================================
# III. Roles
# ==============================================================================
def list_roles(store, tag: str) -> list[dict]:
    with store.groups.read() as groups:
        return copy.deepcopy(_find(groups, tag).get("roles", []))


def _check_permissions(value) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise BadInput("permissions must be a list of strings")
    unknown = [p for p in value if p not in PERMISSIONS]
    if unknown:
        raise BadInput(f"Unknown permission {unknown[0]}")
    return list(dict.fromkeys(value))


def create_role(
    store,
    username: str,
    tag: str,
    name: str,
    description: str = "",
    assign_on_join: bool = False,
    self_assignable: bool = False,
    permissions: list | None = None,
) -> dict:
    if not name:
        raise BadInput("Name is required")
    if len(name) > MAX_NAME:
        raise BadInput("Name length exceeded")
    if len(description or "") > MAX_ROLE_DESCRIPTION:
        raise BadInput("Description length exceeded")
    if name == OWNER_ROLE:
        raise BadInput("Role name is reserved")
    permissions = _check_permissions(permissions or [])
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.roles.manage", "You don't have permission to manage roles")
        role = {
            "id": generate_id(), "group_tag": data["group"]["tag"], "name": name,
            "description": description or "", "assign_on_join": bool(assign_on_join),
            "self_assignable": bool(self_assignable), "benefits": [], "permissions": permissions,
        }
        data["roles"].append(role)
        return copy.deepcopy(role)


def update_role(store, username: str, tag: str, role_id: str, changes: dict) -> dict:
    user_id = _user_id(store, username)
    if not isinstance(changes, dict):
        raise BadInput("Invalid request body")
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.roles.manage", "You don't have permission to manage roles")
        role = _role(data, role_id)
        if role is None:
            raise NotFound("Role not found")
        is_owner_role = role.get("name") == OWNER_ROLE
        if "name" in changes:
            name = changes["name"]
            if not isinstance(name, str) or not name or len(name) > MAX_NAME:
                raise BadInput("Invalid name")
            if is_owner_role or name == OWNER_ROLE:
                raise BadInput("The Owner role cannot be renamed")
            role["name"] = name
        if isinstance(changes.get("description"), str):
            if len(changes["description"]) > MAX_ROLE_DESCRIPTION:
                raise BadInput("Description length exceeded")
            role["description"] = changes["description"]
        for flag in ("assign_on_join", "self_assignable"):
            if isinstance(changes.get(flag), bool):
                if is_owner_role and changes[flag]:
                    raise BadInput("The Owner role cannot be assigned automatically")
                role[flag] = changes[flag]
        if "permissions" in changes:
            role["permissions"] = _check_permissions(changes["permissions"])
        if "benefits" in changes:
            benefits = changes["benefits"]
            if not isinstance(benefits, list) or not all(isinstance(b, str) for b in benefits):
                raise BadInput("benefits must be a list of strings")
            role["benefits"] = benefits
        return copy.deepcopy(role)


def delete_role(store, username: str, tag: str, role_id: str) -> None:
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.roles.manage", "You don't have permission to manage roles")
        role = _role(data, role_id)
        if role is None:
            raise NotFound("Role not found")
        if role.get("name") == OWNER_ROLE:
            raise PreconditionFailed("Cannot delete the Owner role")
        data["roles"] = [r for r in data["roles"] if r.get("id") != role_id]
        for member in data["members"]:
            member["role_ids"] = [r for r in member.get("role_ids", []) if r != role_id]


def assign_role(store, username: str, tag: str, target: str, role_id: str) -> None:
    """Give a member a role of the same group. Self-assignable roles need no permission for oneself."""
    user_id = _user_id(store, username)
    target_id = _user_id(store, target)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        role = _role(data, role_id)
        if role is None:
            raise NotFound("Role not found")
        if role.get("name") == OWNER_ROLE:
            raise PreconditionFailed("The Owner role cannot be assigned")
        if not (role.get("self_assignable") and user_id == target_id):
            _require(data, user_id, "groups.roles.assign", "You don't have permission to assign roles")
        member = _member(data, target_id)
        if member is None:
            raise NotFound("User is not a member of this group")
        if role_id in member.get("role_ids", []):
            raise PreconditionFailed("User already has this role")
        member.setdefault("role_ids", []).append(role_id)


def remove_role(store, username: str, tag: str, target: str, role_id: str) -> None:
    user_id = _user_id(store, username)
    target_id = _user_id(store, target)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.roles.assign", "You don't have permission to remove roles")
        role = _role(data, role_id)
        if role is None:
            raise NotFound("Role not found")
        if role.get("name") == OWNER_ROLE:
            raise PreconditionFailed("Cannot remove Owner role")
        member = _member(data, target_id)
        if member is None:
            raise NotFound("User is not a member of this group")
        if role_id not in member.get("role_ids", []):
            raise PreconditionFailed("User doesn't have this role")
        member["role_ids"] = [r for r in member["role_ids"] if r != role_id]


def permissions_of(store, tag: str, username: str) -> list[str]:
    user_id = _user_id(store, username)
    with store.groups.read() as groups:
        data = _find(groups, tag)
        return [p for p in PERMISSIONS if has_permission(data, user_id, p)]


# ==============================================================================
# IV. Announcements and tips
# ==============================================================================
def create_announcement(
    store, username: str, tag: str, title: str, body: str = "", ping_members: bool = False, now: int | None = None,
) -> dict:
    if not title:
        raise BadInput("Title is required")
    if len(title) > MAX_TITLE:
        raise BadInput("Title length exceeded")
    if len(body or "") > MAX_BODY:
        raise BadInput("Body length exceeded")
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.announcements.send", "You don't have permission to send announcements")
        announcement = {
            "id": generate_id(), "group_tag": data["group"]["tag"], "title": title, "body": body or "",
            "author_user_id": user_id, "created_at": now if now is not None else now_s(),
            "ping_members": bool(ping_members),
        }
        data.setdefault("announcements", []).append(announcement)
        return copy.deepcopy(announcement)


def list_announcements(store, tag: str, limit: int = 10) -> list[dict]:
    limit = limit if isinstance(limit, int) and limit > 0 else 10
    with store.groups.read() as groups:
        announcements = _find(groups, tag).get("announcements", [])
        return copy.deepcopy(list(reversed(announcements))[:limit])


def delete_announcement(store, username: str, tag: str, announcement_id: str) -> None:
    user_id = _user_id(store, username)
    with store.groups.write() as groups:
        data = _find(groups, tag)
        _require(data, user_id, "groups.announcements.send", "You don't have permission to delete announcements")
        before = data.get("announcements", [])
        after = [a for a in before if a.get("id") != announcement_id]
        if len(after) == len(before):
            raise NotFound("Announcement not found")
        data["announcements"] = after


def send_tip(store, username: str, tag: str, amount, now: int | None = None) -> dict:
    """
    Move credits from the caller to the group's balance.

    Members may tip any group; non-members only public ones. Locks groups then users.
    """
    value = money.parse_amount(amount)
    username = username.lower()
    user_id = _user_id(store, username)
    now = now if now is not None else now_s()
    with store.write_many("groups", "users") as (groups, users):
        data = _find(groups, tag)
        if _member(data, user_id) is None and not data["group"].get("public"):
            raise Forbidden("You can only tip groups you're a member of")
        user = users.get(username)
        if user is None:
            raise NotFound("User not found")
        if not U.can(user, "transfer"):
            raise Forbidden("Your account standing does not allow transfers")
        balance = U.get_credits(user)
        if balance < value:
            raise PreconditionFailed("Insufficient funds", code="INSUFFICIENT_FUNDS")
        U.set_credits(user, money.sub(balance, value))
        U.add_transaction(user, {
            "type": "out", "user": f"group:{data['group']['tag']}", "amount": value,
            "note": "group tip", "new_total": U.get_credits(user),
        }, now * 1000)
        group = data["group"]
        group["credits_balance"] = money.add(group.get("credits_balance", 0), value)
        tip = {
            "id": generate_id(), "group_tag": group["tag"], "from_user_id": user_id,
            "amount_credits": value, "created_at": now,
        }
        data.setdefault("tips", []).append(tip)
        return copy.deepcopy(tip)


def list_tips(store, tag: str, limit: int = 20) -> list[dict]:
    limit = limit if isinstance(limit, int) and limit > 0 else 20
    with store.groups.read() as groups:
        return copy.deepcopy(list(reversed(_find(groups, tag).get("tips", [])))[:limit])
