"""
Message rules: building records, status, edits, deletes, reactions and stars.

Functions that change a stored message return the top-level fields to write.
"""
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from .constants import (
    DELETED_MESSAGE_TEXT,
    EDIT_WINDOW_SECONDS,
    MEDIA_MESSAGE_TYPES,
    MESSAGE_STATUS_ORDER,
    MESSAGE_TYPES,
)
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied
from .utils import generate_id, normalize_datetime, random_suffix


def build_message(chat_id: str, sender_id: str, payload: Dict[str, Any], now) -> Dict[str, Any]:
    """
    Validate a send request and build the stored message.

    A client may supply its own ``id`` (messages queued offline) so a retry
    does not create a duplicate.
    """
    message_type = payload.get("type") or "text"
    if message_type not in MESSAGE_TYPES:
        raise InvalidInput("invalid_message_type", valid=list(MESSAGE_TYPES))

    text = payload.get("text") or ""
    if not isinstance(text, str):
        raise InvalidInput("invalid_text")
    text = text.strip()

    if message_type == "text" and not text:
        raise InvalidInput("missing_text")
    if message_type in MEDIA_MESSAGE_TYPES and not payload.get("mediaUrl"):
        raise InvalidInput("missing_media_url")
    if message_type == "location":
        location = payload.get("location") or {}
        if "lat" not in location or "lng" not in location:
            raise InvalidInput("missing_location")

    message_id = payload.get("id") or generate_id("m", random_suffix(6))

    message = {
        "id": message_id,
        "chatId": chat_id,
        "senderId": sender_id,
        "text": text,
        "type": message_type,
        "timestamp": now,
        "status": "sent",
        "reactions": {},
        "starredBy": [],
        "deletedFor": [],
        "isDeleted": False,
        "isEdited": False,
    }
    for key in ("mediaUrl", "fileName", "fileSize", "duration", "caption", "location", "gameInvite", "musicShare"):
        if payload.get(key) is not None:
            message[key] = payload[key]
    return message


def preview_text(message: Dict[str, Any]) -> str:
    """One-line summary used for the chat list and push bodies."""
    if message.get("isDeleted"):
        return DELETED_MESSAGE_TEXT
    message_type = message.get("type", "text")
    if message_type == "text":
        return message.get("text", "")
    if message_type == "poll":
        return f"Poll: {(message.get('pollData') or {}).get('question', '')}"
    labels = {
        "image": "Photo",
        "video": "Video",
        "voice": "Voice message",
        "document": "Document",
        "location": "Location",
        "game_invite": "Game invite",
        "music_share": "Music",
    }
    label = labels.get(message_type, message_type)
    caption = message.get("caption") or message.get("text")
    return f"{label}: {caption}" if caption else label


def require_message(message: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not message:
        raise NotFound("message_not_found")
    return message


# =========================================================================
# Status
# =========================================================================

def status_update(message: Dict[str, Any], new_status: str) -> Optional[Dict[str, Any]]:
    """Status only moves forward (sent -> delivered -> read)."""
    if new_status not in MESSAGE_STATUS_ORDER:
        raise InvalidInput("invalid_status", valid=list(MESSAGE_STATUS_ORDER))
    current = MESSAGE_STATUS_ORDER.get(message.get("status", "sent"), 0)
    if MESSAGE_STATUS_ORDER[new_status] <= current:
        return None
    return {"status": new_status}


# =========================================================================
# Edit / delete
# =========================================================================

def edit_updates(message: Dict[str, Any], user_id: str, new_text: str, now) -> Dict[str, Any]:
    if message.get("senderId") != user_id:
        raise PermissionDenied("not_message_sender")
    if message.get("isDeleted"):
        raise Conflict("message_deleted")
    if message.get("type", "text") != "text":
        raise InvalidInput("only_text_editable")

    new_text = (new_text or "").strip() if isinstance(new_text, str) else ""
    if not new_text:
        raise InvalidInput("missing_text")

    sent_at = normalize_datetime(message.get("timestamp"))
    if sent_at and (now - sent_at).total_seconds() > EDIT_WINDOW_SECONDS:
        raise Conflict("edit_window_expired", windowSeconds=EDIT_WINDOW_SECONDS)

    return {"text": new_text, "isEdited": True, "editedAt": now}


def tombstone_updates(message: Dict[str, Any], user_id: str, is_chat_admin: bool = False) -> Dict[str, Any]:
    """Delete for everyone: the sender, or a group admin, replaces the content."""
    if message.get("senderId") != user_id and not is_chat_admin:
        raise PermissionDenied("not_message_sender")
    return {
        "isDeleted": True,
        "text": DELETED_MESSAGE_TEXT,
        "type": "text",
        "mediaUrl": None,
        "pollData": None,
        "reactions": {},
    }


def hide_updates(message: Dict[str, Any], user_id: str) -> Optional[Dict[str, Any]]:
    """Delete for me."""
    deleted_for = list(message.get("deletedFor") or [])
    if user_id in deleted_for:
        return None
    deleted_for.append(user_id)
    return {"deletedFor": deleted_for}


def visible_to(messages: Iterable[Dict[str, Any]], user_id: str) -> List[Dict[str, Any]]:
    return [m for m in messages if user_id not in (m.get("deletedFor") or [])]


def search(messages: Iterable[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    if not query:
        return list(messages)
    needle = query.lower()
    return [
        m for m in messages
        if m.get("type", "text") == "text" and not m.get("isDeleted") and needle in (m.get("text") or "").lower()
    ]


# =========================================================================
# Reactions and stars
# =========================================================================

def reaction_updates(message: Dict[str, Any], user_id: str, emoji: Optional[str]) -> Dict[str, Any]:
    """
    One reaction per user. Reacting with the current emoji again, or with
    no emoji, removes the reaction.
    """
    if message.get("isDeleted"):
        raise Conflict("message_deleted")
    reactions = dict(message.get("reactions") or {})
    if not emoji or reactions.get(user_id) == emoji:
        reactions.pop(user_id, None)
    else:
        if not isinstance(emoji, str) or len(emoji) > 16:
            raise InvalidInput("invalid_emoji")
        reactions[user_id] = emoji
    return {"reactions": reactions}


def reaction_summary(reactions: Optional[Dict[str, str]]) -> List[Dict[str, Any]]:
    counts = Counter((reactions or {}).values())
    grouped = {}
    for uid, emoji in (reactions or {}).items():
        grouped.setdefault(emoji, []).append(uid)
    return [
        {"emoji": emoji, "count": count, "users": grouped[emoji]}
        for emoji, count in counts.most_common()
    ]


def star_updates(message: Dict[str, Any], user_id: str, starred: bool) -> Optional[Dict[str, Any]]:
    starred_by = list(message.get("starredBy") or [])
    if starred and user_id not in starred_by:
        starred_by.append(user_id)
    elif not starred and user_id in starred_by:
        starred_by.remove(user_id)
    else:
        return None
    return {"starredBy": starred_by}
