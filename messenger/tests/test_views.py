import json
import os
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import RequestFactory, SimpleTestCase, override_settings
from django.utils import timezone

from messenger import chats, link_preview, views
from messenger.firebase_service import (
    CALLS, CHATS, FOLLOWS, GAMES, INVITE_LINKS, MESSAGES, NOTIFICATIONS, STATUSES, USER_SETTINGS, USERS,
)
from messenger.tests.fakes import FakeFirestoreService, install_fakes


class ViewTestCase(SimpleTestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.store, self.push = install_fakes(self)
        for uid, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")):
            self.store.seed(USERS, uid, {"name": name, "fcmToken": f"token-{uid}", "platform": "web"})

    def post(self, view, body, *args):
        request = self.factory.post("/", data=json.dumps(body), content_type="application/json")
        response = view(request, *args)
        return response, json.loads(response.content)

    def get(self, view, params, *args):
        response = view(self.factory.get("/", params), *args)
        return response, json.loads(response.content)

    def direct_chat(self):
        response, body = self.post(views.chat_collection, {"user_id": "alice", "contact_id": "bob"})
        self.assertEqual(response.status_code, 201)
        return body["chat"]["id"]

    def group_chat(self, **settings):
        now = timezone.now()
        group = chats.new_group_chat("alice", "Weekend", ["bob"], now)
        group["groupSettings"].update(settings)
        self.store.seed(CHATS, group["id"], group)
        for uid in group["participants"]:
            self.store.set_subdocument(CHATS, group["id"], USER_SETTINGS, uid, chats.default_user_settings(now))
        return group["id"]


class TestHealth(ViewTestCase):
    def test_connected(self):
        response, body = self.get(views.health, {})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body, {"status": "ok", "firestore": "connected"})

    def test_store_unavailable(self):
        self.store.available = False
        _, body = self.get(views.health, {})
        self.assertEqual(body["firestore"], "not_configured")

        response, body = self.get(views.chat_collection, {"user_id": "alice"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(body["error"], "firestore_unavailable")


class TestChatViews(ViewTestCase):
    def test_individual_chat_is_reused(self):
        chat_id = self.direct_chat()
        response, body = self.post(views.chat_collection, {"user_id": "bob", "contact_id": "alice"})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(body["created"])
        self.assertEqual(body["chat"]["id"], chat_id)

    def test_missing_user(self):
        response, body = self.post(views.chat_collection, {"contact_id": "bob"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "missing_user_id")

    def test_group_creation_notifies_members(self):
        response, body = self.post(views.chat_collection, {
            "user_id": "alice",
            "type": "group",
            "group_name": "Trip",
            "participants": ["bob", "carol"],
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(body["chat"]["role"], "owner")
        notified = sorted(n["userId"] for n in self.store.docs(NOTIFICATIONS).values())
        self.assertEqual(notified, ["bob", "carol"])

    def test_list_and_settings(self):
        chat_id = self.direct_chat()
        response, body = self.post(views.chat_settings, {"user_id": "alice", "isPinned": True}, chat_id)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(body["settings"]["isPinned"])

        _, body = self.get(views.chat_collection, {"user_id": "alice"})
        self.assertEqual(body["count"], 1)
        _, body = self.get(views.chat_collection, {"user_id": "carol"})
        self.assertEqual(body["count"], 0)

    def test_outsider_cannot_read_chat(self):
        chat_id = self.direct_chat()
        response, _ = self.get(views.chat_detail, {"user_id": "carol"}, chat_id)
        self.assertEqual(response.status_code, 403)


class TestMessageViews(ViewTestCase):
    def setUp(self):
        super().setUp()
        self.chat_id = self.direct_chat()

    def send(self, user_id="alice", **payload):
        return self.post(views.chat_messages, {"user_id": user_id, "text": "hi", **payload}, self.chat_id)

    def test_send_updates_chat_and_unread(self):
        response, body = self.send()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(body["message"]["pushSent"], 1)

        chat = self.store.get_document(CHATS, self.chat_id)
        self.assertEqual(chat["lastMessage"]["text"], "hi")
        self.assertEqual(self.store.get_user_chat_settings(self.chat_id, "bob")["unreadCount"], 1)
        self.assertEqual(self.store.get_user_chat_settings(self.chat_id, "alice")["unreadCount"], 0)
        self.push.send_message_push.assert_awaited_once()

    def test_resend_with_client_id(self):
        self.send(id="client-1")
        response, body = self.send(id="client-1")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(body["created"])
        self.assertEqual(len(self.store.docs(MESSAGES)), 1)

    def test_muted_participant_gets_no_push(self):
        self.store.set_subdocument(CHATS, self.chat_id, USER_SETTINGS, "bob", {"isMuted": True}, merge=True)
        _, body = self.send()
        self.assertEqual(body["message"]["pushSent"], 0)

    def test_mark_read(self):
        self.send()
        self.send()
        _, body = self.post(views.chat_mark_read, {"user_id": "bob"}, self.chat_id)
        self.assertEqual(body["markedRead"], 2)
        self.assertEqual(self.store.get_user_chat_settings(self.chat_id, "bob")["unreadCount"], 0)
        self.assertTrue(all(m["status"] == "read" for m in self.store.docs(MESSAGES).values()))

    def test_reactions(self):
        _, sent = self.send()
        message_id = sent["message"]["id"]
        _, body = self.post(views.message_reactions, {"user_id": "bob", "emoji": "👍"}, message_id)
        self.assertEqual(body["summary"], [{"emoji": "👍", "count": 1, "users": ["bob"]}])

        response, _ = self.post(views.message_reactions, {"user_id": "carol", "emoji": "👍"}, message_id)
        self.assertEqual(response.status_code, 403)

    def test_edit_only_by_sender(self):
        _, sent = self.send()
        message_id = sent["message"]["id"]
        response, _ = self.post(views.message_edit, {"user_id": "bob", "text": "nope"}, message_id)
        self.assertEqual(response.status_code, 403)
        _, body = self.post(views.message_edit, {"user_id": "alice", "text": "hello"}, message_id)
        self.assertTrue(body["message"]["isEdited"])

    def test_admin_only_group(self):
        group_id = self.group_chat(sendMessages="admins")
        response, body = self.post(views.chat_messages, {"user_id": "bob", "text": "hey"}, group_id)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(body["error"], "only_admins_can_send")

    def seed_messages(self, texts, start=None, **extra):
        start = start or timezone.now() - timedelta(hours=1)
        ids = []
        for index, text in enumerate(texts):
            message_id = f"seed_{len(self.store.docs(MESSAGES))}"
            self.store.seed(MESSAGES, message_id, {
                "chatId": self.chat_id, "senderId": "alice", "text": text, "type": "text",
                "timestamp": start + timedelta(seconds=index), "deletedFor": [], **extra,
            })
            ids.append(message_id)
        return ids

    def test_list_is_chronological_and_pages_backwards(self):
        ids = self.seed_messages(["one", "two", "three", "four", "five"])
        _, body = self.get(views.chat_messages, {"user_id": "bob", "limit": 2}, self.chat_id)
        self.assertEqual([m["id"] for m in body["messages"]], ids[3:])
        self.assertTrue(body["hasMore"])

        before = self.store.docs(MESSAGES)[ids[3]]["timestamp"].isoformat()
        _, body = self.get(views.chat_messages, {"user_id": "bob", "limit": 2, "before": before}, self.chat_id)
        self.assertEqual([m["text"] for m in body["messages"]], ["two", "three"])

        response, body = self.get(views.chat_messages, {"user_id": "bob", "before": "yesterday"}, self.chat_id)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "invalid_before")

    def test_deleted_for_me_is_hidden(self):
        self.seed_messages(["visible"])
        self.seed_messages(["hidden from bob"], deletedFor=["bob"])
        _, body = self.get(views.chat_messages, {"user_id": "bob"}, self.chat_id)
        self.assertEqual([m["text"] for m in body["messages"]], ["visible"])
        _, body = self.get(views.chat_messages, {"user_id": "alice"}, self.chat_id)
        self.assertEqual(body["count"], 2)

    def test_search_reaches_past_the_first_page(self):
        start = timezone.now() - timedelta(days=1)
        self.seed_messages(["needle here"], start=start)
        self.seed_messages([f"filler {i}" for i in range(60)], start=start + timedelta(minutes=1))

        _, body = self.get(views.chat_messages, {"user_id": "bob", "q": "NEEDLE"}, self.chat_id)
        self.assertEqual(body["count"], 1)
        self.assertEqual(body["messages"][0]["text"], "needle here")
        self.assertFalse(body["hasMore"])

        _, body = self.get(views.chat_messages, {"user_id": "bob", "q": "filler", "limit": 10}, self.chat_id)
        self.assertEqual(body["messages"][-1]["text"], "filler 59")
        self.assertEqual(body["count"], 10)
        self.assertTrue(body["hasMore"])

    def test_client_id_of_another_message_is_refused(self):
        self.send(id="c1")
        response, body = self.post(views.poll_create, {
            "user_id": "alice", "id": "c1", "question": "Pizza?", "options": ["Yes", "No"],
        }, self.chat_id)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "message_id_in_use")

        response, body = self.send(user_id="bob", id="c1")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.docs(MESSAGES)["c1"]["senderId"], "alice")

    def test_thread_replies_update_root_summary(self):
        _, root = self.send(text="root")
        root_id = root["message"]["id"]
        _, reply = self.send(user_id="bob", text="first reply", thread_id=root_id)
        self.assertEqual(reply["message"]["threadId"], root_id)
        self.send(text="second reply", thread_id=reply["message"]["id"])

        summary = self.store.docs(MESSAGES)[root_id]["threadSummary"]
        self.assertEqual(summary["replyCount"], 2)
        self.assertEqual(summary["participants"], ["bob", "alice"])
        self.assertEqual(summary["lastReplyBy"], "alice")

        _, body = self.get(views.message_thread, {"user_id": "bob"}, reply["message"]["id"])
        self.assertEqual(body["rootId"], root_id)
        self.assertEqual([m["text"] for m in body["messages"]], ["root", "first reply", "second reply"])
        self.assertEqual(body["summary"]["replyCount"], 2)

        response, _ = self.get(views.message_thread, {"user_id": "carol"}, root_id)
        self.assertEqual(response.status_code, 403)

    def test_bulk_delete(self):
        first = self.send()[1]["message"]["id"]
        second = self.send()[1]["message"]["id"]
        response, body = self.post(views.message_bulk_delete, {
            "user_id": "bob", "message_ids": [first, second, "missing"],
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["deleted"], [first, second])
        self.assertEqual(body["failed"], [{"messageId": "missing", "error": "message_not_found"}])
        self.assertFalse(body["success"])
        self.assertEqual(self.store.docs(MESSAGES)[first]["deletedFor"], ["bob"])

        response, body = self.post(views.message_bulk_delete, {"user_id": "bob", "message_ids": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "missing_message_ids")

    def test_starred_list(self):
        first = self.send(text="keep this")[1]["message"]["id"]
        self.send(text="not this")
        self.post(views.message_star, {"user_id": "bob"}, first)

        _, body = self.get(views.message_starred, {"user_id": "bob"})
        self.assertEqual([m["text"] for m in body["messages"]], ["keep this"])
        _, body = self.get(views.message_starred, {"user_id": "alice"})
        self.assertEqual(body["count"], 0)

    @mock.patch.dict(os.environ, {"GOOGLE_TRANSLATE_API_KEY": ""})
    def test_translate(self):
        message_id = self.send(text="hello")[1]["message"]["id"]
        _, body = self.post(views.message_translate, {"user_id": "bob", "target_language": "Spanish"}, message_id)
        self.assertEqual(body["original"], "hello")
        self.assertEqual(body["translated"], "[Spanish]: hello")
        self.assertTrue(body["supported"])

        response, body = self.post(views.message_translate, {"user_id": "bob"}, message_id)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Spanish", body["supported"])

        response, _ = self.post(views.message_translate, {"user_id": "carol", "target_language": "Hindi"},
                                message_id)
        self.assertEqual(response.status_code, 403)


class TestLinkPreviewView(ViewTestCase):
    def setUp(self):
        super().setUp()
        link_preview._cache.clear()

    @mock.patch("messenger.link_preview.socket.getaddrinfo",
                return_value=[(2, 1, 6, "", ("93.184.216.34", 443))])
    @mock.patch("messenger.link_preview.requests.get")
    def test_preview_from_text(self, get, resolve):
        response_mock = mock.Mock(is_redirect=False, encoding="utf-8")
        response_mock.iter_content.return_value = iter([b"<html><head><title>Example</title></head></html>"])
        get.return_value = response_mock

        response, body = self.get(views.link_preview_view, {
            "user_id": "alice", "text": "look at https://example.com/page.",
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["preview"]["title"], "Example")
        self.assertEqual(get.call_args.args[0], "https://example.com/page")

    @mock.patch("messenger.link_preview.socket.getaddrinfo",
                return_value=[(2, 1, 6, "", ("169.254.169.254", 80))])
    @mock.patch("messenger.link_preview.requests.get")
    def test_internal_address_refused(self, get, resolve):
        response, body = self.get(views.link_preview_view, {
            "user_id": "alice", "url": "http://169.254.169.254/latest/meta-data/",
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "blocked_url")
        get.assert_not_called()

    @override_settings(MESSENGER_REQUIRE_AUTH=True)
    @mock.patch("messenger.link_preview.requests.get")
    def test_requires_auth(self, get):
        response, body = self.get(views.link_preview_view, {"url": "https://example.com/"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(body["error"], "missing_auth_token")
        get.assert_not_called()

    def test_missing_url(self):
        response, body = self.get(views.link_preview_view, {"user_id": "alice", "text": "no links"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "missing_url")


class TestPollViews(ViewTestCase):
    def test_create_and_vote(self):
        chat_id = self.direct_chat()
        response, body = self.post(views.poll_create, {
            "user_id": "alice",
            "question": "Pizza?",
            "options": ["Yes", "No"],
        }, chat_id)
        self.assertEqual(response.status_code, 201)
        message_id = body["message"]["id"]

        _, body = self.post(views.poll_vote, {"user_id": "bob", "option_id": "opt_0"}, message_id)
        self.assertEqual(body["results"]["options"][0]["count"], 1)

        response, _ = self.post(views.poll_vote, {"user_id": "bob", "option_id": "opt_9"}, message_id)
        self.assertEqual(response.status_code, 400)


class TestGroupViews(ViewTestCase):
    def test_settings_by_admin_only(self):
        group_id = self.group_chat()
        response, _ = self.post(views.group_settings, {"user_id": "bob", "settings": {"editInfo": "admins"}},
                                group_id)
        self.assertEqual(response.status_code, 403)

        _, body = self.post(views.group_settings, {"user_id": "alice", "settings": {"editInfo": "admins"}},
                            group_id)
        self.assertEqual(body["groupSettings"]["editInfo"], "admins")

    def test_unknown_group(self):
        response, body = self.post(views.group_leave, {"user_id": "alice"}, "group_missing")
        self.assertEqual(response.status_code, 404)

    def test_invite_link_flow(self):
        group_id = self.group_chat()
        response, body = self.get(views.group_invite_link, {"user_id": "alice"}, group_id)
        self.assertEqual(response.status_code, 404)

        response, body = self.post(views.group_invite_link, {"user_id": "alice", "max_uses": 1}, group_id)
        self.assertEqual(response.status_code, 201)
        link_id = body["link"]["linkId"]

        _, body = self.post(views.invite_join, {"user_id": "bob"}, link_id)
        self.assertTrue(body["alreadyMember"])

        _, body = self.post(views.invite_join, {"user_id": "carol"}, link_id)
        self.assertFalse(body["alreadyMember"])
        self.assertIn("carol", body["participants"])
        self.assertEqual(self.store.get_document(INVITE_LINKS, link_id)["uses"], 1)


class TestCallViews(ViewTestCase):
    def setUp(self):
        super().setUp()
        patcher = mock.patch("messenger.views.calls._schedule_missed_timeout")
        self.schedule = patcher.start()
        self.addCleanup(patcher.stop)

    def invite(self):
        response, body = self.post(views.call_invite, {"user_id": "alice", "callee_id": "bob", "call_type": "video"})
        self.assertEqual(response.status_code, 201)
        return body["callId"]

    def test_invite_pushes_and_arms_timer(self):
        call_id = self.invite()
        self.schedule.assert_called_once()
        self.push.send_incoming_call_push.assert_awaited_once()
        self.assertTrue(self.store.get_document(CALLS, call_id)["pushSent"])

    def test_answer_then_end(self):
        call_id = self.invite()
        self.post(views.call_offer, {"user_id": "alice", "call_id": call_id, "offer": {"type": "offer", "sdp": "o"}})
        _, body = self.post(views.call_answer, {
            "user_id": "bob",
            "call_id": call_id,
            "answer": {"type": "answer", "sdp": "a"},
        })
        self.assertEqual(body["status"], "accepted")
        self.assertEqual(body["offer"]["sdp"], "o")

        _, body = self.post(views.call_end, {"user_id": "alice", "call_id": call_id})
        self.assertEqual(body["status"], "ended")
        self.assertIsNotNone(body["durationSeconds"])

    def test_caller_cannot_reject(self):
        call_id = self.invite()
        response, _ = self.post(views.call_reject, {"user_id": "alice", "call_id": call_id})
        self.assertEqual(response.status_code, 403)

    def test_ice_exchange(self):
        call_id = self.invite()
        response, _ = self.post(views.call_ice, {
            "user_id": "bob",
            "call_id": call_id,
            "candidate": {"candidate": "candidate:1", "sdpMid": "0"},
        })
        self.assertEqual(response.status_code, 201)

        _, body = self.get(views.call_ice_list, {"user_id": "alice"}, call_id)
        self.assertEqual([c["candidate"] for c in body["candidates"]], ["candidate:1"])
        _, body = self.get(views.call_ice_list, {"user_id": "bob"}, call_id)
        self.assertEqual(body["candidates"], [])

    def test_timeout_sweep(self):
        call_id = self.invite()
        self.store.update_document(CALLS, call_id, {"createdAt": timezone.now() - timedelta(minutes=5)})
        _, body = self.post(views.call_timeout_sweep, {"timeout_seconds": 60})
        self.assertEqual(body["updatedCount"], 1)
        self.assertEqual(self.store.get_document(CALLS, call_id)["status"], "missed")
        kinds = [(n["userId"], n["type"], n["metadata"]["callId"]) for n in self.store.docs(NOTIFICATIONS).values()]
        self.assertEqual(kinds, [("bob", "missed_call", call_id)])

        _, body = self.post(views.call_timeout_sweep, {"timeout_seconds": 60})
        self.assertEqual(body["updatedCount"], 0)
        self.assertEqual(len(self.store.docs(NOTIFICATIONS)), 1)

    def test_sweep_command(self):
        stale = self.invite()
        fresh = self.invite()
        self.store.update_document(CALLS, stale, {"createdAt": timezone.now() - timedelta(minutes=5)})

        out = StringIO()
        call_command("sweep_missed_calls", "--timeout-seconds", "60", stdout=out)
        self.assertIn("Marked 1 call(s) as missed", out.getvalue())
        self.assertEqual(self.store.get_document(CALLS, stale)["status"], "missed")
        self.assertEqual(self.store.get_document(CALLS, fresh)["status"], "ringing")
        self.assertEqual([n["type"] for n in self.store.docs(NOTIFICATIONS).values()], ["missed_call"])

    def test_sweep_command_needs_firestore(self):
        self.store.available = False
        with self.assertRaises(CommandError):
            call_command("sweep_missed_calls", stdout=StringIO())

    def test_blocked_callee_cannot_be_called(self):
        self.store.update_document(USERS, "bob", {"blockedUsers": ["alice"]})
        response, body = self.post(views.call_invite, {"user_id": "alice", "callee_id": "bob"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(body["error"], "user_blocked")
        self.assertEqual(self.store.docs(CALLS), {})
        self.push.send_incoming_call_push.assert_not_awaited()

    def test_missed_timer_notifies_callee(self):
        from messenger.views.calls import _mark_missed

        call_id = self.invite()
        self.assertTrue(_mark_missed(call_id))
        self.assertFalse(_mark_missed(call_id))
        kinds = [(n["userId"], n["type"]) for n in self.store.docs(NOTIFICATIONS).values()]
        self.assertEqual(kinds, [("bob", "missed_call")])


class TestGroupCallViews(ViewTestCase):
    def test_join_and_leave(self):
        group_id = self.group_chat()
        response, body = self.post(views.group_call_create, {"user_id": "alice", "chat_id": group_id})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(body["pushedTo"], ["bob"])
        call_id = body["call"]["callId"]

        _, body = self.post(views.group_call_join, {"user_id": "bob"}, call_id)
        self.assertEqual(body["call"]["activeParticipants"], ["alice", "bob"])

        self.post(views.group_call_leave, {"user_id": "alice"}, call_id)
        _, body = self.post(views.group_call_leave, {"user_id": "bob"}, call_id)
        self.assertEqual(body["call"]["status"], "ended")


class TestGameViews(ViewTestCase):
    def test_tictactoe_through_views(self):
        chat_id = self.direct_chat()
        response, body = self.post(views.game_collection, {
            "user_id": "alice", "chat_id": chat_id, "game_type": "tictactoe",
        })
        self.assertEqual(response.status_code, 201)
        self.assertIsNotNone(body["inviteMessageId"])
        game_id = body["game"]["id"]

        self.post(views.game_join, {"user_id": "bob"}, game_id)
        _, body = self.post(views.game_start, {"user_id": "alice"}, game_id)
        self.assertEqual(body["game"]["currentPlayer"], "alice")

        response, body = self.post(views.game_move, {"user_id": "bob", "move": {"position": 4}}, game_id)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(body["error"], "not_your_turn")

        for user_id, position in (("alice", 0), ("bob", 3), ("alice", 1), ("bob", 4), ("alice", 2)):
            response, body = self.post(views.game_move, {"user_id": user_id, "move": {"position": position}},
                                       game_id)
            self.assertEqual(response.status_code, 200)
        self.assertEqual(body["game"]["status"], "finished")
        self.assertEqual(body["game"]["result"]["winner"], "alice")

        _, body = self.get(views.game_stats, {"user_id": "bob"})
        self.assertEqual(body["stats"]["losses"], 1)

    def test_unknown_game(self):
        response, _ = self.post(views.game_join, {"user_id": "bob"}, "game_missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.store.docs(GAMES), {})


class TestMusicViews(ViewTestCase):
    def test_session_lifecycle(self):
        chat_id = self.direct_chat()
        music = {"type": "youtube", "url": "https://youtu.be/dQw4w9WgXcQ", "title": "Song", "duration": 200}
        response, body = self.post(views.music_collection, {"user_id": "alice", "chat_id": chat_id, "music": music})
        self.assertEqual(response.status_code, 201)
        session_id = body["session"]["id"]

        response, _ = self.post(views.music_join, {"user_id": "carol"}, session_id)
        self.assertEqual(response.status_code, 403)
        self.post(views.music_join, {"user_id": "bob"}, session_id)

        _, body = self.post(views.music_playback, {"user_id": "bob", "is_playing": False, "current_time": 30},
                            session_id)
        self.assertEqual(body["session"]["currentPosition"], 30.0)

        _, body = self.get(views.music_collection, {"user_id": "alice", "chat_id": chat_id})
        self.assertEqual(body["session"]["id"], session_id)


class TestNotificationViews(ViewTestCase):
    def setUp(self):
        super().setUp()
        now = timezone.now()
        for index in range(3):
            self.store.seed(NOTIFICATIONS, f"n{index}", {
                "userId": "bob", "actorId": "alice", "type": "game_invite",
                "read": False, "createdAt": now + timedelta(seconds=index), "metadata": {},
            })

    def test_list_and_read(self):
        _, body = self.get(views.notification_list, {"user_id": "bob"})
        self.assertEqual([n["id"] for n in body["notifications"]], ["n2", "n1", "n0"])
        self.assertEqual(body["unreadCount"], 3)

        response, _ = self.post(views.notification_read, {"user_id": "alice"}, "n0")
        self.assertEqual(response.status_code, 403)
        self.post(views.notification_read, {"user_id": "bob"}, "n0")

        _, body = self.post(views.notification_read_all, {"user_id": "bob"})
        self.assertEqual(body["updatedCount"], 2)


class TestFollowViews(ViewTestCase):
    def notifications(self):
        return [(n["userId"], n["actorId"], n["type"]) for n in self.store.docs(NOTIFICATIONS).values()]

    def test_follow_public_account_and_follow_back(self):
        response, body = self.post(views.follow_user, {"user_id": "alice"}, "bob")
        self.assertEqual(response.status_code, 201)
        self.assertTrue(body["isFollowing"])
        self.assertEqual(self.store.docs(USERS)["alice"]["following"], ["bob"])
        self.assertEqual(self.store.docs(USERS)["bob"]["followersCount"], 1)

        response, body = self.post(views.follow_user, {"user_id": "alice"}, "bob")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(body["created"])

        self.post(views.follow_user, {"user_id": "bob"}, "alice")
        self.assertEqual(self.notifications(), [
            ("bob", "alice", "new_follower"),
            ("alice", "bob", "follow_back"),
        ])

        _, body = self.get(views.follow_status, {"user_id": "alice"}, "bob")
        self.assertTrue(body["isMutual"])
        _, body = self.get(views.follower_list, {"user_id": "carol"}, "bob")
        self.assertEqual([r["followerId"] for r in body["followers"]], ["alice"])
        _, body = self.get(views.follow_stats, {"user_id": "carol"}, "alice")
        self.assertEqual(body["stats"], {"followersCount": 1, "followingCount": 1})

    def test_private_account_request_flow(self):
        self.store.update_document(USERS, "carol", {"isPrivate": True})
        _, body = self.post(views.follow_user, {"user_id": "alice"}, "carol")
        self.assertTrue(body["isPending"])
        self.assertNotIn("followers", self.store.docs(USERS)["carol"])

        _, body = self.get(views.follow_requests, {"user_id": "carol"})
        self.assertEqual([r["followerId"] for r in body["requests"]], ["alice"])
        _, body = self.get(views.follow_requests, {"user_id": "alice", "direction": "outgoing"})
        self.assertEqual([r["followingId"] for r in body["requests"]], ["carol"])

        response, _ = self.post(views.follow_request_accept, {"user_id": "bob"}, "alice")
        self.assertEqual(response.status_code, 404)

        _, body = self.post(views.follow_request_accept, {"user_id": "carol"}, "alice")
        self.assertEqual(body["relationship"]["status"], "accepted")
        self.assertEqual(self.store.docs(USERS)["carol"]["followers"], ["alice"])
        self.assertEqual(self.notifications(), [
            ("carol", "alice", "follow_request"),
            ("alice", "carol", "follow_accepted"),
        ])

        response, body = self.post(views.follow_request_accept, {"user_id": "carol"}, "alice")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(body["currentStatus"], "accepted")

    def test_reject_and_unfollow(self):
        self.store.update_document(USERS, "carol", {"isPrivate": True})
        self.post(views.follow_user, {"user_id": "bob"}, "carol")
        _, body = self.post(views.follow_request_reject, {"user_id": "carol"}, "bob")
        self.assertTrue(body["success"])
        self.assertEqual(self.store.docs(FOLLOWS), {})

        self.post(views.follow_user, {"user_id": "bob"}, "alice")
        _, body = self.post(views.unfollow_user, {"user_id": "bob"}, "alice")
        self.assertTrue(body["wasFollowing"])
        self.assertEqual(self.store.docs(USERS)["alice"]["followers"], [])
        self.assertEqual(self.store.docs(USERS)["alice"]["followersCount"], 0)

        _, body = self.post(views.unfollow_user, {"user_id": "bob"}, "alice")
        self.assertFalse(body["wasFollowing"])

    def test_cannot_follow_self_or_unknown_user(self):
        response, body = self.post(views.follow_user, {"user_id": "alice"}, "alice")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "cannot_follow_self")
        response, _ = self.post(views.follow_user, {"user_id": "alice"}, "ghost")
        self.assertEqual(response.status_code, 404)


class TestBlockingViews(ViewTestCase):
    def test_block_stops_messages_and_follows(self):
        chat_id = self.direct_chat()
        self.post(views.follow_user, {"user_id": "bob"}, "alice")

        _, body = self.post(views.user_block, {"user_id": "alice"}, "bob")
        self.assertEqual(body["blockedUsers"], ["bob"])
        self.assertEqual(self.store.docs(FOLLOWS), {})
        self.assertEqual(self.store.docs(USERS)["alice"]["followers"], [])

        for sender in ("alice", "bob"):
            response, body = self.post(views.chat_messages, {"user_id": sender, "text": "hi"}, chat_id)
            self.assertEqual(response.status_code, 403)
            self.assertEqual(body["error"], "user_blocked")
        self.assertEqual(self.store.docs(MESSAGES), {})

        response, _ = self.post(views.follow_user, {"user_id": "bob"}, "alice")
        self.assertEqual(response.status_code, 403)
        response, _ = self.post(views.call_invite, {"user_id": "bob", "callee_id": "alice"})
        self.assertEqual(response.status_code, 403)

        _, body = self.get(views.blocked_users, {"user_id": "alice"})
        self.assertEqual(body["blockedUsers"], ["bob"])

        _, body = self.post(views.user_unblock, {"user_id": "alice"}, "bob")
        self.assertEqual(body["blockedUsers"], [])
        response, _ = self.post(views.chat_messages, {"user_id": "bob", "text": "sorry"}, chat_id)
        self.assertEqual(response.status_code, 201)

    def test_group_messages_ignore_blocks(self):
        group_id = self.group_chat()
        self.store.update_document(USERS, "alice", {"blockedUsers": ["bob"]})
        response, _ = self.post(views.chat_messages, {"user_id": "bob", "text": "hello all"}, group_id)
        self.assertEqual(response.status_code, 201)

    def test_block_validation(self):
        response, body = self.post(views.user_block, {"user_id": "alice"}, "alice")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "cannot_block_self")
        response, _ = self.post(views.user_block, {"user_id": "alice"}, "ghost")
        self.assertEqual(response.status_code, 404)


class TestStatusViews(ViewTestCase):
    def setUp(self):
        super().setUp()
        self.direct_chat()

    def post_status(self, user_id="alice", **payload):
        response, body = self.post(views.status_collection, {"user_id": user_id, "type": "text", "text": "hi",
                                                             **payload})
        self.assertEqual(response.status_code, 201)
        return body["status"]["id"]

    def test_contacts_see_status(self):
        status_id = self.post_status()
        _, body = self.get(views.status_collection, {"user_id": "bob"})
        self.assertEqual([s["id"] for s in body["statuses"]], [status_id])
        self.assertFalse(body["statuses"][0]["viewed"])
        self.assertNotIn("viewers", body["statuses"][0])

        _, body = self.get(views.status_collection, {"user_id": "carol"})
        self.assertEqual(body["count"], 0)

    def test_followers_privacy(self):
        self.post_status(privacy="followers")
        _, body = self.get(views.status_collection, {"user_id": "carol"})
        self.assertEqual(body["count"], 0)
        self.post(views.follow_user, {"user_id": "carol"}, "alice")
        _, body = self.get(views.status_collection, {"user_id": "carol"})
        self.assertEqual(body["count"], 1)

    def test_expired_status_hidden(self):
        status_id = self.post_status()
        self.store.update_document(STATUSES, status_id, {"expiresAt": timezone.now() - timedelta(minutes=1)})
        _, body = self.get(views.status_collection, {"user_id": "bob"})
        self.assertEqual(body["count"], 0)
        response, _ = self.post(views.status_view, {"user_id": "bob"}, status_id)
        self.assertEqual(response.status_code, 404)

    def test_views_and_viewers(self):
        status_id = self.post_status()
        self.post(views.status_view, {"user_id": "bob"}, status_id)
        self.post(views.status_view, {"user_id": "bob"}, status_id)
        response, _ = self.post(views.status_view, {"user_id": "carol"}, status_id)
        self.assertEqual(response.status_code, 404)

        _, body = self.get(views.status_viewers, {"user_id": "alice"}, status_id)
        self.assertEqual([v["userId"] for v in body["viewers"]], ["bob"])
        response, _ = self.get(views.status_viewers, {"user_id": "bob"}, status_id)
        self.assertEqual(response.status_code, 403)

        _, body = self.get(views.status_collection, {"user_id": "bob", "user": "alice"})
        self.assertTrue(body["statuses"][0]["viewed"])

    def test_only_owner_deletes(self):
        status_id = self.post_status()
        response, _ = self.post(views.status_delete, {"user_id": "bob"}, status_id)
        self.assertEqual(response.status_code, 403)
        _, body = self.post(views.status_delete, {"user_id": "alice"}, status_id)
        self.assertTrue(body["success"])
        self.assertEqual(self.store.docs(STATUSES), {})

    def test_invalid_status(self):
        response, body = self.post(views.status_collection, {"user_id": "alice", "type": "image"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"], "missing_media_url")


class TestUnavailableStore(SimpleTestCase):
    def test_writes_refused(self):
        install_fakes(self, FakeFirestoreService(available=False))
        request = RequestFactory().post("/", data=json.dumps({"user_id": "alice", "callee_id": "bob"}),
                                        content_type="application/json")
        self.assertEqual(views.call_invite(request).status_code, 503)
