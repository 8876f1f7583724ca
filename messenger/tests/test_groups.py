import unittest
from datetime import datetime, timedelta, timezone

from messenger import chats, groups, invite_links
from messenger.errors import Conflict, InvalidInput, NotFound, PermissionDenied

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _group(**settings):
    group = chats.new_group_chat("owner", "Team", ["admin", "member", "other"], NOW)
    group["groupRoles"]["admin"] = "admin"
    group["groupSettings"].update(settings)
    return group


class TestPermissions(unittest.TestCase):
    def test_roles(self):
        group = _group()
        self.assertEqual(groups.role_of(group, "owner"), "owner")
        self.assertEqual(groups.role_of(group, "member"), "member")
        self.assertIsNone(groups.role_of(group, "stranger"))
        self.assertTrue(groups.is_admin(group, "admin"))
        self.assertFalse(groups.is_admin(group, "member"))

    def test_admin_only_sending(self):
        group = _group(sendMessages="admins")
        self.assertTrue(groups.can_send_messages(group, "admin"))
        self.assertFalse(groups.can_send_messages(group, "member"))

    def test_non_member_has_no_permissions(self):
        permissions = groups.permissions_for(_group(), "stranger")
        self.assertFalse(any(permissions.values()))

    def test_walkie_talkie_specific_users(self):
        group = _group(walkieTalkiePermission="specific", walkieTalkieAllowedUsers=["member"])
        self.assertTrue(groups.has_walkie_talkie_permission(group, "member"))
        self.assertFalse(groups.has_walkie_talkie_permission(group, "admin"))

    def test_music_sharing_disabled(self):
        group = _group(musicSharingEnabled=False)
        self.assertFalse(groups.has_music_sharing_permission(group, "owner"))
        direct = {"type": "individual", "participants": ["a", "b"]}
        self.assertTrue(groups.has_music_sharing_permission(direct, "a"))


class TestInfoAndSettings(unittest.TestCase):
    def test_info_update_obeys_policy(self):
        group = _group(editInfo="admins")
        updates = groups.info_updates(group, "admin", {"groupName": " New name "}, NOW)
        self.assertEqual(updates["groupName"], "New name")
        with self.assertRaises(PermissionDenied):
            groups.info_updates(group, "member", {"groupName": "x"}, NOW)

    def test_info_update_needs_changes(self):
        with self.assertRaises(InvalidInput):
            groups.info_updates(_group(), "owner", {}, NOW)

    def test_settings_admin_only_and_validated(self):
        group = _group()
        updates = groups.settings_updates(group, "admin", {"sendMessages": "admins"}, NOW)
        self.assertEqual(updates["groupSettings"]["sendMessages"], "admins")
        self.assertEqual(updates["groupSettings"]["editInfo"], "all")
        with self.assertRaises(PermissionDenied):
            groups.settings_updates(group, "member", {"sendMessages": "admins"}, NOW)
        with self.assertRaises(InvalidInput):
            groups.settings_updates(group, "owner", {"sendMessages": "everyone"}, NOW)
        with self.assertRaises(InvalidInput):
            groups.settings_updates(group, "owner", {"approveMembers": "yes"}, NOW)


class TestMembership(unittest.TestCase):
    def test_add_participants(self):
        updates, added = groups.add_participants_updates(_group(), "member", ["new", "admin", "new"], NOW)
        self.assertEqual(added, ["new"])
        self.assertEqual(updates["groupRoles"]["new"], "member")

    def test_add_existing_only_conflicts(self):
        with self.assertRaises(Conflict):
            groups.add_participants_updates(_group(), "owner", ["admin"], NOW)

    def test_add_requires_permission(self):
        with self.assertRaises(PermissionDenied):
            groups.add_participants_updates(_group(addMembers="admins"), "member", ["new"], NOW)

    def test_remove_rules(self):
        group = _group()
        updates = groups.remove_participant_updates(group, "admin", "member", NOW)
        self.assertNotIn("member", updates["participants"])
        self.assertNotIn("member", updates["groupRoles"])
        with self.assertRaises(PermissionDenied):
            groups.remove_participant_updates(group, "admin", "owner", NOW)
        with self.assertRaises(PermissionDenied):
            groups.remove_participant_updates(group, "member", "other", NOW)
        with self.assertRaises(NotFound):
            groups.remove_participant_updates(group, "owner", "stranger", NOW)

    def test_only_owner_removes_admins(self):
        group = _group()
        group["groupRoles"]["other"] = "admin"
        with self.assertRaises(PermissionDenied):
            groups.remove_participant_updates(group, "admin", "other", NOW)
        self.assertNotIn("other", groups.remove_participant_updates(group, "owner", "other", NOW)["participants"])

    def test_owner_leaving_hands_over_to_admin(self):
        updates = groups.leave_updates(_group(), "owner", NOW)
        self.assertEqual(updates["groupRoles"]["admin"], "owner")
        self.assertNotIn("owner", updates["participants"])

    def test_owner_leaving_without_admins_picks_next_member(self):
        group = _group()
        group["groupRoles"]["admin"] = "member"
        updates = groups.leave_updates(group, "owner", NOW)
        self.assertEqual(updates["groupRoles"]["admin"], "owner")

    def test_last_member_leaving(self):
        group = chats.new_group_chat("solo", "Just me", [], NOW)
        self.assertIsNone(groups.leave_updates(group, "solo", NOW))

    def test_roles_and_transfer(self):
        group = _group()
        self.assertEqual(groups.role_updates(group, "owner", "member", "admin", NOW)["groupRoles"]["member"], "admin")
        with self.assertRaises(PermissionDenied):
            groups.role_updates(group, "admin", "member", "admin", NOW)
        with self.assertRaises(InvalidInput):
            groups.role_updates(group, "owner", "member", "owner", NOW)

        roles = groups.transfer_ownership_updates(group, "owner", "member", NOW)["groupRoles"]
        self.assertEqual(roles["member"], "owner")
        self.assertEqual(roles["owner"], "admin")

    def test_join_via_link(self):
        group = _group()
        self.assertIsNone(groups.join_updates(group, "member", NOW))
        self.assertIn("newbie", groups.join_updates(group, "newbie", NOW)["participants"])


class TestInviteLinks(unittest.TestCase):
    def test_new_link(self):
        link = invite_links.new_link("g1", "owner", NOW, expiry_hours=24, max_uses=2)
        self.assertEqual(len(link["linkId"]), 12)
        self.assertEqual(link["expiresAt"], NOW + timedelta(hours=24))
        self.assertTrue(invite_links.link_url(link["linkId"]).endswith(f"/#/join/{link['linkId']}"))

    def test_invalid_parameters(self):
        with self.assertRaises(InvalidInput):
            invite_links.new_link("g1", "owner", NOW, expiry_hours=0)
        with self.assertRaises(InvalidInput):
            invite_links.new_link("g1", "owner", NOW, max_uses=0)

    def test_validate(self):
        link = invite_links.new_link("g1", "owner", NOW, max_uses=1)
        self.assertEqual(invite_links.validate(link, NOW), "g1")

        link.update(invite_links.usage_update(link, NOW))
        with self.assertRaises(Conflict) as ctx:
            invite_links.validate(link, NOW)
        self.assertEqual(ctx.exception.code, "invite_link_exhausted")

    def test_expired_and_revoked(self):
        link = invite_links.new_link("g1", "owner", NOW, expiry_hours=1)
        with self.assertRaises(Conflict) as ctx:
            invite_links.validate(link, NOW + timedelta(hours=2))
        self.assertEqual(ctx.exception.code, "invite_link_expired")

        link["isActive"] = False
        with self.assertRaises(Conflict) as ctx:
            invite_links.validate(link, NOW)
        self.assertEqual(ctx.exception.code, "invite_link_revoked")

        with self.assertRaises(NotFound):
            invite_links.validate(None, NOW)


if __name__ == "__main__":
    unittest.main()
