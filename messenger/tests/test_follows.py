import unittest
from datetime import datetime, timedelta, timezone

from messenger import follows, status
from messenger.errors import Conflict, InvalidInput, NotFound, PermissionDenied

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestFollowRules(unittest.TestCase):
    def test_public_account_is_followed_at_once(self):
        relationship = follows.new_relationship("alice", {"id": "alice"}, "bob", {"id": "bob"}, NOW)
        self.assertEqual(relationship["id"], "alice_bob")
        self.assertEqual(relationship["status"], "accepted")
        self.assertEqual(relationship["acceptedAt"], NOW)
        self.assertEqual(follows.follow_notification_type(relationship, None), "new_follower")

    def test_private_account_gets_request(self):
        relationship = follows.new_relationship("alice", {}, "bob", {"isPrivate": True}, NOW)
        self.assertEqual(relationship["status"], "pending")
        self.assertEqual(follows.follow_state(relationship), {"isFollowing": False, "isPending": True,
                                                              "status": "pending"})
        self.assertEqual(follows.follow_notification_type(relationship, None), "follow_request")

    def test_follow_back(self):
        relationship = follows.new_relationship("bob", {}, "alice", {}, NOW)
        reverse = {"followerId": "alice", "followingId": "bob", "status": "accepted"}
        self.assertEqual(follows.follow_notification_type(relationship, reverse), "follow_back")

    def test_invalid_follows(self):
        with self.assertRaises(InvalidInput):
            follows.new_relationship("alice", {}, "alice", {}, NOW)
        with self.assertRaises(NotFound):
            follows.new_relationship("alice", {}, "ghost", None, NOW)
        with self.assertRaises(PermissionDenied):
            follows.new_relationship("alice", {}, "bob", {"blockedUsers": ["alice"]}, NOW)

    def test_accept_only_pending_request_for_me(self):
        pending = {"followerId": "alice", "followingId": "bob", "status": "pending"}
        self.assertEqual(follows.accept_update(pending, "bob", NOW), {"status": "accepted", "acceptedAt": NOW})
        with self.assertRaises(NotFound):
            follows.accept_update(pending, "carol", NOW)
        with self.assertRaises(Conflict):
            follows.accept_update(dict(pending, status="accepted"), "bob", NOW)
        with self.assertRaises(NotFound):
            follows.require_pending_request(None, "bob")

    def test_link_updates_keep_count_in_step(self):
        user = {"following": ["carol"], "followingCount": 7}
        self.assertEqual(follows.link_updates(user, "following", "followingCount", "bob", True),
                         {"following": ["carol", "bob"], "followingCount": 2})
        self.assertIsNone(follows.link_updates(user, "following", "followingCount", "carol", True))
        self.assertEqual(follows.link_updates(user, "following", "followingCount", "carol", False),
                         {"following": [], "followingCount": 0})
        self.assertIsNone(follows.link_updates(user, "following", "followingCount", "bob", False))

    def test_stats(self):
        self.assertEqual(follows.follow_stats({"followers": ["a", "b"], "followingCount": 3}),
                         {"followersCount": 2, "followingCount": 3})
        with self.assertRaises(NotFound):
            follows.follow_stats(None)


class TestBlocking(unittest.TestCase):
    def test_block_and_unblock(self):
        user = {"id": "alice", "blockedUsers": []}
        self.assertEqual(follows.block_update(user, "bob"), {"blockedUsers": ["bob"]})
        self.assertIsNone(follows.block_update({"id": "alice", "blockedUsers": ["bob"]}, "bob"))
        with self.assertRaises(InvalidInput):
            follows.block_update(user, "alice")
        self.assertEqual(follows.unblock_update({"blockedUsers": ["bob", "carol"]}, "bob"),
                         {"blockedUsers": ["carol"]})
        self.assertIsNone(follows.unblock_update(user, "bob"))

    def test_block_applies_both_ways(self):
        follows.require_not_blocked("alice", {}, "bob", {})
        with self.assertRaises(PermissionDenied):
            follows.require_not_blocked("alice", {"blockedUsers": ["bob"]}, "bob", {})
        with self.assertRaises(PermissionDenied):
            follows.require_not_blocked("alice", None, "bob", {"blockedUsers": ["alice"]})


class TestStatusRules(unittest.TestCase):
    def post(self, owner="alice", **payload):
        return status.new_status(owner, {"type": "text", "text": "hello", **payload}, NOW)

    def test_new_status_expires_after_a_day(self):
        record = self.post()
        self.assertEqual(record["expiresAt"], NOW + timedelta(hours=24))
        self.assertEqual(record["privacy"], "contacts")
        self.assertEqual(record["viewers"], [])
        self.assertFalse(status.is_expired(record, NOW + timedelta(hours=23)))
        self.assertTrue(status.is_expired(record, NOW + timedelta(hours=24)))

    def test_invalid_statuses(self):
        with self.assertRaises(InvalidInput):
            status.new_status("alice", {"type": "text"}, NOW)
        with self.assertRaises(InvalidInput):
            status.new_status("alice", {"type": "image"}, NOW)
        with self.assertRaises(InvalidInput):
            status.new_status("alice", {"type": "gif", "media_url": "x"}, NOW)
        with self.assertRaises(InvalidInput):
            self.post(privacy="everyone")
        with self.assertRaises(InvalidInput):
            self.post(privacy="selected")

    def test_privacy(self):
        viewer = {"following": ["alice"], "followers": []}
        self.assertTrue(status.can_view(self.post(), "bob", viewer, {}, {"alice"}))
        self.assertFalse(status.can_view(self.post(), "bob", viewer, {}, set()))
        self.assertTrue(status.can_view(self.post(privacy="followers"), "bob", viewer, {}, set()))
        self.assertFalse(status.can_view(self.post(privacy="followings"), "bob", viewer, {}, set()))
        self.assertTrue(status.can_view(self.post(privacy="all"), "bob", viewer, {}, set()))
        selected = self.post(privacy="selected", selected_contacts=["carol"])
        self.assertFalse(status.can_view(selected, "bob", viewer, {}, {"alice"}))
        self.assertTrue(status.can_view(selected, "carol", {}, {}, set()))
        self.assertTrue(status.can_view(selected, "alice", {}, {}, set()))

    def test_blocked_viewer_sees_nothing(self):
        owner = {"blockedUsers": ["bob"]}
        self.assertFalse(status.can_view(self.post(privacy="all"), "bob", {"following": ["alice"]}, owner, {"alice"}))

    def test_views_recorded_once(self):
        record = self.post()
        update = status.view_update(record, "bob", NOW)
        self.assertEqual(update, {"viewers": [{"userId": "bob", "viewedAt": NOW}]})
        record.update(update)
        self.assertIsNone(status.view_update(record, "bob", NOW))
        self.assertIsNone(status.view_update(record, "alice", NOW))
        with self.assertRaises(NotFound):
            status.view_update(record, "carol", NOW + timedelta(days=2))

    def test_viewer_list_is_owner_only(self):
        record = self.post()
        record["viewers"] = [{"userId": "bob", "viewedAt": NOW}]
        self.assertEqual(status.for_viewer(record, "alice")["viewCount"], 1)
        seen_by_bob = status.for_viewer(record, "bob")
        self.assertNotIn("viewers", seen_by_bob)
        self.assertTrue(seen_by_bob["viewed"])
        self.assertFalse(status.for_viewer(record, "carol")["viewed"])

    def test_visible_statuses_newest_first(self):
        older = self.post(owner="bob")
        older["timestamp"] = NOW - timedelta(hours=2)
        newer = self.post(owner="carol")
        expired = self.post(owner="bob")
        expired["expiresAt"] = NOW - timedelta(minutes=1)
        visible = status.visible_statuses([older, newer, expired], "alice", {}, {}, {"bob", "carol"}, NOW)
        self.assertEqual([s["userId"] for s in visible], ["carol", "bob"])

    def test_owner_check(self):
        record = self.post()
        with self.assertRaises(PermissionDenied):
            status.require_owner(record, "bob")
        with self.assertRaises(NotFound):
            status.require_owner(None, "alice")


if __name__ == "__main__":
    unittest.main()
