"""
Unit tests for services.groups.
Ownership, join policies, role permissions, announcements and tips.
"""
import pytest

from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed
from rotur.services import groups


@pytest.fixture
def devs(store, make_user):
    """Alice owns the public, open group "devs"."""
    make_user("alice")
    groups.create_group(store, "alice", "devs", "Developers", description="we build", public=True)
    return "devs"


def role_named(store, tag: str, name: str) -> dict:
    return next(r for r in groups.list_roles(store, tag) if r["name"] == name)


class TestGroups:
    """Creation, lookup and membership."""

    def test_create(self, store, devs):
        group = groups.get_group(store, "DEVS")
        assert group["tag"] == "devs"
        assert group["member_count"] == 1
        assert group["join_policy"] == "OPEN"
        assert {r["name"] for r in groups.list_roles(store, devs)} == {"Owner", "Member"}

    def test_tag_conflict(self, store, make_user, devs):
        make_user("bob")
        with pytest.raises(Conflict):
            groups.create_group(store, "bob", "Devs", "Other devs")

    def test_one_group_per_owner(self, store, devs):
        with pytest.raises(PreconditionFailed):
            groups.create_group(store, "alice", "second", "Second")

    @pytest.mark.parametrize("tag", ["", "with space", "t" * 21])
    def test_bad_tag(self, store, make_user, tag):
        make_user("bob")
        with pytest.raises(BadInput):
            groups.create_group(store, "bob", tag, "Name")

    def test_join_and_leave(self, store, make_user, devs):
        make_user("bob")
        assert groups.join_group(store, "bob", devs)["member_count"] == 2
        with pytest.raises(PreconditionFailed):
            groups.join_group(store, "bob", devs)
        assert [g["tag"] for g in groups.my_groups(store, "bob")] == ["devs"]
        groups.leave_group(store, "bob", devs)
        assert groups.my_groups(store, "bob") == []
        with pytest.raises(PreconditionFailed):
            groups.leave_group(store, "alice", devs)

    def test_member_role_assigned_on_join(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        bob_id = store.users.lookup("bob")["sys.id"]
        member = next(m for m in groups.members_of(store, devs) if m["user_id"] == bob_id)
        assert member["role_ids"] == [role_named(store, devs, "Member")["id"]]

    @pytest.mark.parametrize("changes,error", [
        ({"join_policy": "REQUEST"}, PreconditionFailed),
        ({"join_policy": "INVITE"}, Forbidden),
        ({"public": False}, Forbidden),
    ])
    def test_join_policies(self, store, make_user, devs, changes, error):
        make_user("bob")
        groups.update_group(store, "alice", devs, changes)
        with pytest.raises(error):
            groups.join_group(store, "bob", devs)

    def test_only_owner_updates_or_deletes(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        with pytest.raises(Forbidden):
            groups.update_group(store, "bob", devs, {"name": "Mine"})
        with pytest.raises(Forbidden):
            groups.delete_group(store, "bob", devs)
        groups.delete_group(store, "alice", devs)
        with pytest.raises(NotFound):
            groups.get_group(store, devs)

    def test_search_public_only(self, store, make_user, devs):
        make_user("bob")
        groups.create_group(store, "bob", "hidden", "Hidden developers")
        assert [g["tag"] for g in groups.search_groups(store, "develop")] == ["devs"]


class TestRoles:
    """Permissions through roles."""

    def test_kick_needs_permission(self, store, make_user, devs):
        make_user("bob")
        make_user("carol")
        groups.join_group(store, "bob", devs)
        groups.join_group(store, "carol", devs)
        with pytest.raises(Forbidden):
            groups.kick_member(store, "bob", devs, "carol")

        mods = groups.create_role(store, "alice", devs, "Mods", permissions=["groups.members.remove"])
        groups.assign_role(store, "alice", devs, "bob", mods["id"])
        assert groups.permissions_of(store, devs, "bob") == ["groups.members.remove"]

        groups.kick_member(store, "bob", devs, "carol")
        assert groups.get_group(store, devs)["member_count"] == 2
        with pytest.raises(PreconditionFailed):
            groups.kick_member(store, "bob", devs, "alice")

    def test_owner_holds_every_permission(self, store, devs):
        assert groups.permissions_of(store, devs, "alice") == list(groups.PERMISSIONS)

    def test_role_validation(self, store, devs):
        with pytest.raises(BadInput):
            groups.create_role(store, "alice", devs, "Owner")
        with pytest.raises(BadInput):
            groups.create_role(store, "alice", devs, "Mods", permissions=["groups.everything"])

    def test_owner_role_is_protected(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        owner = role_named(store, devs, "Owner")
        with pytest.raises(PreconditionFailed):
            groups.delete_role(store, "alice", devs, owner["id"])
        with pytest.raises(PreconditionFailed):
            groups.assign_role(store, "alice", devs, "bob", owner["id"])
        with pytest.raises(BadInput):
            groups.update_role(store, "alice", devs, owner["id"], {"name": "Boss"})

    def test_self_assignable_role(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        pings = groups.create_role(store, "alice", devs, "Pings", self_assignable=True)
        groups.assign_role(store, "bob", devs, "bob", pings["id"])
        with pytest.raises(PreconditionFailed):
            groups.assign_role(store, "bob", devs, "bob", pings["id"])
        groups.remove_role(store, "alice", devs, "bob", pings["id"])

    def test_delete_role_strips_members(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        mods = groups.create_role(store, "alice", devs, "Mods")
        groups.assign_role(store, "alice", devs, "bob", mods["id"])
        groups.delete_role(store, "alice", devs, mods["id"])
        assert all(mods["id"] not in m["role_ids"] for m in groups.members_of(store, devs))


class TestAnnouncementsAndTips:
    """Announcements and credit tips."""

    def test_announcements(self, store, make_user, devs):
        make_user("bob")
        groups.join_group(store, "bob", devs)
        with pytest.raises(Forbidden):
            groups.create_announcement(store, "bob", devs, "Hi")
        first = groups.create_announcement(store, "alice", devs, "First", now=1)
        groups.create_announcement(store, "alice", devs, "Second", now=2)
        assert [a["title"] for a in groups.list_announcements(store, devs)] == ["Second", "First"]
        groups.delete_announcement(store, "alice", devs, first["id"])
        with pytest.raises(NotFound):
            groups.delete_announcement(store, "alice", devs, first["id"])

    def test_tip_moves_credits(self, store, make_user, devs):
        make_user("bob", credits=10)
        tip = groups.send_tip(store, "bob", devs, "2.50")
        assert tip["amount_credits"] == 2.5
        assert store.users.lookup("bob")["sys.currency"] == 7.5
        assert groups.get_group(store, devs)["credits_balance"] == 2.5
        assert groups.list_tips(store, devs)[0]["id"] == tip["id"]
        with pytest.raises(PreconditionFailed):
            groups.send_tip(store, "bob", devs, 100)

    def test_private_group_tips_need_membership(self, store, make_user, devs):
        make_user("bob", credits=10)
        groups.update_group(store, "alice", devs, {"public": False})
        with pytest.raises(Forbidden):
            groups.send_tip(store, "bob", devs, 1)
