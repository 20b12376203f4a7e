# rotur/api/v1/routers/groups.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_store, ok
from rotur.schemas.groups import AnnouncementIn, GroupIn, GroupUpdateIn, RoleIn, RoleUpdateIn, TipIn
from rotur.services import groups

router = APIRouter(prefix="/groups", tags=["groups"])


# ==============================================================================
# I. Groups
# ==============================================================================
@router.post("")
def create_group(body: GroupIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    """
    Create a group owned by the caller, with an Owner and a Member role.

    Error codes:
        - BAD_INPUT: Bad tag, name, URL or join policy
        - GROUP_TAG_EXISTS: Tag already taken
        - PRECONDITION_FAILED: The caller already owns a group
    """
    group = groups.create_group(
        store, me, body.tag, body.name,
        description=body.description,
        icon_url=body.icon_url,
        banner_url=body.banner_url,
        public=body.public,
        join_policy=body.join_policy,
    )
    return ok(group)


@router.get("/search")
def search(q: str = "", store=Depends(get_store)):
    return ok(groups.search_groups(store, q))


@router.get("/mine")
def mine(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.my_groups(store, me))


@router.get("/{tag}")
def get_group(tag: str, store=Depends(get_store)):
    return ok(groups.get_group(store, tag))


@router.patch("/{tag}")
def update_group(tag: str, body: GroupUpdateIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.update_group(store, me, tag, body.model_dump(exclude_unset=True)))


@router.delete("/{tag}")
def delete_group(tag: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    groups.delete_group(store, me, tag)
    return ok({"tag": tag})


# ==============================================================================
# II. Membership
# ==============================================================================
@router.post("/{tag}/join")
def join(tag: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.join_group(store, me, tag))


@router.post("/{tag}/leave")
def leave(tag: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.leave_group(store, me, tag))


@router.get("/{tag}/members")
def members(tag: str, store=Depends(get_store)):
    return ok(groups.members_of(store, tag))


@router.delete("/{tag}/members/{username}")
def kick(tag: str, username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.kick_member(store, me, tag, username))


@router.get("/{tag}/permissions")
def my_permissions(tag: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.permissions_of(store, tag, me))


# ==============================================================================
# III. Roles
# ==============================================================================
@router.get("/{tag}/roles")
def roles(tag: str, store=Depends(get_store)):
    return ok(groups.list_roles(store, tag))


@router.post("/{tag}/roles")
def create_role(tag: str, body: RoleIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    role = groups.create_role(
        store, me, tag, body.name,
        description=body.description,
        assign_on_join=body.assign_on_join,
        self_assignable=body.self_assignable,
        permissions=body.permissions,
    )
    return ok(role)


@router.patch("/{tag}/roles/{role_id}")
def update_role(
    tag: str, role_id: str, body: RoleUpdateIn, me: str = Depends(get_current_username), store=Depends(get_store),
):
    return ok(groups.update_role(store, me, tag, role_id, body.model_dump(exclude_unset=True)))


@router.delete("/{tag}/roles/{role_id}")
def delete_role(tag: str, role_id: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    groups.delete_role(store, me, tag, role_id)
    return ok({"role_id": role_id})


@router.post("/{tag}/members/{username}/roles/{role_id}")
def assign_role(tag: str, username: str, role_id: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    groups.assign_role(store, me, tag, username, role_id)
    return ok({"username": username.lower(), "role_id": role_id})


@router.delete("/{tag}/members/{username}/roles/{role_id}")
def remove_role(tag: str, username: str, role_id: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    groups.remove_role(store, me, tag, username, role_id)
    return ok({"username": username.lower(), "role_id": role_id})


# ==============================================================================
# IV. Announcements and tips
# ==============================================================================
@router.get("/{tag}/announcements")
def announcements(tag: str, limit: int = 10, store=Depends(get_store)):
    return ok(groups.list_announcements(store, tag, limit))


@router.post("/{tag}/announcements")
def announce(tag: str, body: AnnouncementIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(groups.create_announcement(store, me, tag, body.title, body.body, body.ping_members))


@router.delete("/{tag}/announcements/{announcement_id}")
def delete_announcement(
    tag: str, announcement_id: str, me: str = Depends(get_current_username), store=Depends(get_store),
):
    groups.delete_announcement(store, me, tag, announcement_id)
    return ok({"id": announcement_id})


@router.get("/{tag}/tips")
def tips(tag: str, limit: int = 20, store=Depends(get_store)):
    return ok(groups.list_tips(store, tag, limit))


@router.post("/{tag}/tips")
def tip(tag: str, body: TipIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    """Move credits from the caller to the group's balance."""
    return ok(groups.send_tip(store, me, tag, body.amount))
