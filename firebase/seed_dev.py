"""
Firestore seed script (development)
Run with: python3 firebase/seed_dev.py --confirm [--reset]

Targets the emulator when FIREBASE_USE_EMULATOR=true, otherwise the project
named by FIREBASE_PROJECT_ID with a service account.
"""

import json
import os
import sys
from datetime import datetime, timedelta, timezone

import firebase_admin
from firebase_admin import credentials, firestore

COLLECTIONS = (
    "users",
    "chats",
    "messages",
    "groupInviteLinks",
    "calls",
    "notifications",
    "games",
    "musicSessions",
    "followRelationships",
    "statusUpdates",
)


def _init_firebase():
    project_id = os.environ.get("FIREBASE_PROJECT_ID", "demo-messenger")

    if os.environ.get("FIREBASE_USE_EMULATOR", "").lower() == "true":
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        firebase_admin.initialize_app(options={"projectId": project_id})
        return

    service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")

    cred = None
    if service_account_json:
        try:
            cred = credentials.Certificate(json.loads(service_account_json))
        except json.JSONDecodeError as exc:
            print(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {exc}", file=sys.stderr)
            sys.exit(1)
    elif service_account_path and os.path.exists(service_account_path):
        cred = credentials.Certificate(service_account_path)
    else:
        print(
            "Set FIREBASE_USE_EMULATOR=true or provide FIREBASE_SERVICE_ACCOUNT(_PATH).",
            file=sys.stderr,
        )
        sys.exit(1)

    firebase_admin.initialize_app(cred, options={"projectId": project_id})


def _clear_collection(collection_ref):
    for doc in collection_ref.stream():
        for sub in doc.reference.collections():
            _clear_collection(sub)
        doc.reference.delete()


def clear_all(db):
    print("🧹 Clearing Firestore data...")
    for name in COLLECTIONS:
        _clear_collection(db.collection(name))
    print("✅ Clear completed")


def _user_settings(now, unread=0, pinned=False):
    return {
        "isPinned": pinned,
        "isMuted": False,
        "isArchived": False,
        "isLocked": False,
        "themeColor": None,
        "incomingThemeColor": None,
        "wallpaper": None,
        "hiddenDates": [],
        "unreadCount": unread,
        "createdAt": now,
    }


def _message(message_id, chat_id, sender_id, text, timestamp, status="read", **extra):
    message = {
        "chatId": chat_id,
        "senderId": sender_id,
        "text": text,
        "type": "text",
        "timestamp": timestamp,
        "status": status,
        "reactions": {},
        "starredBy": [],
        "deletedFor": [],
        "isDeleted": False,
        "isEdited": False,
    }
    message.update(extra)
    return message_id, message


def seed(db):
    print("🌱 Seeding Firestore (development)...")

    alice = "user_alice"
    bob = "user_bob"
    carol = "user_carol"
    dave = "user_dave"

    users = [
        (alice, "Alice Kim", "+15550000001", "web"),
        (bob, "Bob Lee", "+15550000002", "android"),
        (carol, "Carol Park", "+15550000003", "ios"),
        (dave, "Dave Choi", "+15550000004", "web"),
    ]

    now = datetime.now(timezone.utc)

    for uid, name, phone, platform in users:
        db.collection("users").document(uid).set({
            "name": name,
            "phone": phone,
            "about": "Hey there! I am using Messenger.",
            "photoURL": None,
            "platform": platform,
            "fcmToken": None,
            "voipToken": None,
            "apnsToken": None,
            "isOnline": False,
            "lastSeen": now,
            "createdAt": now - timedelta(days=30),
        })

    chat_id = f"chat_{alice}_{bob}"
    group_id = "group_weekend_trip"

    db.collection("chats").document(chat_id).set({
        "type": "individual",
        "participants": [alice, bob],
        "createdBy": alice,
        "createdAt": now - timedelta(days=7),
        "updatedAt": now - timedelta(minutes=5),
        "lastMessage": {
            "text": "See you tomorrow!", "senderId": bob, "type": "text", "timestamp": now - timedelta(minutes=5),
        },
        "lastMessageId": "m_seed_3",
    })
    db.collection("chats").document(chat_id).collection("userSettings").document(alice).set(
        _user_settings(now, unread=1, pinned=True)
    )
    db.collection("chats").document(chat_id).collection("userSettings").document(bob).set(_user_settings(now))

    db.collection("chats").document(group_id).set({
        "type": "group",
        "participants": [alice, bob, carol, dave],
        "groupName": "Weekend Trip",
        "groupAvatar": None,
        "groupDescription": "Planning the hike",
        "groupRoles": {alice: "owner", bob: "admin", carol: "member", dave: "member"},
        "groupSettings": {
            "editInfo": "admins",
            "sendMessages": "all",
            "addMembers": "admins",
            "approveMembers": False,
            "walkieTalkieEnabled": True,
            "walkieTalkiePermission": "all",
            "walkieTalkieAllowedUsers": [],
            "callRecordingEnabled": True,
            "musicSharingEnabled": True,
            "musicSharingPermission": "all",
        },
        "createdBy": alice,
        "createdAt": now - timedelta(days=3),
        "updatedAt": now - timedelta(hours=1),
        "lastMessage": {
            "text": "📊 Where should we meet?", "senderId": alice, "type": "poll", "timestamp": now - timedelta(hours=1),
        },
        "lastMessageId": "m_seed_poll",
    })
    for uid in (alice, bob, carol, dave):
        db.collection("chats").document(group_id).collection("userSettings").document(uid).set(
            _user_settings(now, unread=0 if uid == alice else 1)
        )

    messages = [
        _message("m_seed_1", chat_id, alice, "Are we still on for tomorrow?", now - timedelta(minutes=30)),
        _message(
            "m_seed_2", chat_id, bob, "Yes! 10am at the station", now - timedelta(minutes=20),
            reactions={alice: "👍"},
        ),
        _message(
            "m_seed_3", chat_id, bob, "See you tomorrow!", now - timedelta(minutes=5), status="delivered",
            replyTo={"id": "m_seed_1", "text": "Are we still on for tomorrow?", "senderId": alice, "type": "text"},
        ),
        _message(
            "m_seed_poll", group_id, alice, "Where should we meet?", now - timedelta(hours=1),
            status="delivered",
            type="poll",
            pollData={
                "id": "poll_seed_1",
                "question": "Where should we meet?",
                "options": [
                    {"id": "opt_0", "text": "Station", "votes": [alice, carol]},
                    {"id": "opt_1", "text": "Trailhead", "votes": [bob]},
                    {"id": "opt_2", "text": "Cafe", "votes": []},
                ],
                "allowMultipleAnswers": False,
                "isClosed": False,
                "createdBy": alice,
                "createdAt": now - timedelta(hours=1),
            },
        ),
    ]
    for message_id, message in messages:
        db.collection("messages").document(message_id).set(message)

    db.collection("groupInviteLinks").document("seedInvite01").set({
        "linkId": "seedInvite01",
        "groupId": group_id,
        "createdBy": alice,
        "createdAt": now,
        "expiresAt": now + timedelta(hours=72),
        "maxUses": None,
        "uses": 0,
        "isActive": True,
    })

    calls = [
        ("call_seed_1", alice, bob, "audio", "ended", now - timedelta(days=1), 312),
        ("call_seed_2", bob, alice, "video", "missed", now - timedelta(hours=6), None),
        ("call_seed_3", alice, bob, "audio", "rejected", now - timedelta(hours=2), None),
    ]
    for call_id, caller, callee, call_type, status, created_at, duration in calls:
        db.collection("calls").document(call_id).set({
            "callId": call_id,
            "kind": "direct",
            "caller": caller,
            "callee": callee,
            "participants": [caller, callee],
            "chatId": chat_id,
            "type": call_type,
            "status": status,
            "offer": None,
            "answer": None,
            "createdAt": created_at,
            "answeredAt": created_at + timedelta(seconds=4) if duration else None,
            "endedAt": created_at + timedelta(seconds=duration or 45),
            "durationSec": duration,
            "pushSent": True,
        })

    db.collection("notifications").document("notif_seed_1").set({
        "userId": carol,
        "actorId": alice,
        "type": "added_to_group",
        "metadata": {"chatId": group_id, "groupName": "Weekend Trip"},
        "read": False,
        "createdAt": now - timedelta(days=3),
    })

    print("✅ Seed completed (development)")


def main():
    if "--confirm" not in sys.argv:
        print("Refusing to run without --confirm flag.", file=sys.stderr)
        sys.exit(1)

    _init_firebase()
    db = firestore.client()

    if "--reset" in sys.argv:
        clear_all(db)

    seed(db)


if __name__ == "__main__":
    main()
