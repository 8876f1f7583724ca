"""
Chat records and the per-user view of the chat list.
"""
from copy import deepcopy
from typing import Any, Dict, Iterable, List, Optional

from .constants import (
    CHAT_FILTERS,
    CHAT_TOGGLES,
    DEFAULT_GROUP_SETTINGS,
    MAX_GROUP_DESCRIPTION_LENGTH,
    MAX_GROUP_NAME_LENGTH,
    ROLE_MEMBER,
    ROLE_OWNER,
)
from .errors import InvalidInput, NotFound, PermissionDenied
from .utils import generate_id, sort_key_datetime


def default_user_settings(now) -> Dict[str, Any]:
    return {
        "isPinned": False,
        "isMuted": False,
        "isArchived": False,
        "isLocked": False,
        "themeColor": None,
        "incomingThemeColor": None,
        "wallpaper": None,
        "hiddenDates": [],
        "unreadCount": 0,
        "createdAt": now,
    }


def new_individual_chat(user_id: str, contact_id: str, now) -> Dict[str, Any]:
    if not contact_id:
        raise InvalidInput("missing_contact_id")
    if user_id == contact_id:
        raise InvalidInput("cannot_chat_with_self")

    chat_id = generate_id("chat", user_id, contact_id)
    return {
        "id": chat_id,
        "type": "individual",
        "participants": [user_id, contact_id],
        "createdBy": user_id,
        "createdAt": now,
        "updatedAt": now,
        "lastMessage": None,
        "lastMessageId": None,
    }


def validate_group_name(name) -> str:
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise InvalidInput("missing_group_name")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise InvalidInput("group_name_too_long", max=MAX_GROUP_NAME_LENGTH)
    return name


def new_group_chat(
    owner_id: str,
    name: str,
    participant_ids: Iterable[str],
    now,
    description: str = "",
    avatar: Optional[str] = None,
) -> Dict[str, Any]:
    name = validate_group_name(name)
    description = (description or "").strip()
    if len(description) > MAX_GROUP_DESCRIPTION_LENGTH:
        raise InvalidInput("group_description_too_long", max=MAX_GROUP_DESCRIPTION_LENGTH)

    members = []
    for pid in participant_ids or []:
        if pid and pid != owner_id and pid not in members:
            members.append(pid)

    roles = {owner_id: ROLE_OWNER}
    roles.update({pid: ROLE_MEMBER for pid in members})

    return {
        "id": generate_id("group", owner_id),
        "type": "group",
        "participants": [owner_id] + members,
        "groupName": name,
        "groupAvatar": avatar,
        "groupDescription": description,
        "groupRoles": roles,
        "groupSettings": deepcopy(DEFAULT_GROUP_SETTINGS),
        "createdBy": owner_id,
        "createdAt": now,
        "updatedAt": now,
        "lastMessage": None,
        "lastMessageId": None,
    }


def find_individual_chat(chats: Iterable[Dict[str, Any]], user_id: str, contact_id: str) -> Optional[Dict[str, Any]]:
    for chat in chats:
        if chat.get("type") != "individual":
            continue
        participants = chat.get("participants") or []
        if user_id in participants and contact_id in participants:
            return chat
    return None


def require_participant(chat: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    if not chat:
        raise NotFound("chat_not_found")
    if user_id not in (chat.get("participants") or []):
        raise PermissionDenied("not_a_participant")
    return chat


def require_group(chat: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not chat or chat.get("type") != "group":
        raise NotFound("group_not_found")
    return chat


def toggle_updates(settings: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Work out the userSettings update for a settings request.

    ``changes`` maps a toggle name to True/False, or to "toggle" to flip
    the stored value.
    """
    updates = {}
    for key, value in changes.items():
        if key not in CHAT_TOGGLES:
            raise InvalidInput("invalid_setting", setting=key, valid=list(CHAT_TOGGLES))
        if value == "toggle":
            updates[key] = not bool(settings.get(key, False))
        elif isinstance(value, bool):
            updates[key] = value
        else:
            raise InvalidInput("invalid_setting_value", setting=key)
    if not updates:
        raise InvalidInput("no_settings")
    return updates


def _matches_query(chat: Dict[str, Any], user_id: str, query: str, users: Dict[str, Dict[str, Any]]) -> bool:
    def user_matches(uid):
        user = users.get(uid)
        if not user:
            return False
        name = (user.get("name") or "").lower()
        phone = user.get("phone") or ""
        compact_query = query.replace(" ", "")
        return query in name or query in phone or (compact_query and compact_query in phone.replace(" ", ""))

    if chat.get("type") == "group":
        if query in (chat.get("groupName") or "").lower():
            return True
        return any(user_matches(pid) for pid in chat.get("participants") or [])

    others = [pid for pid in chat.get("participants") or [] if pid != user_id]
    return any(user_matches(pid) for pid in others)


def filter_and_sort_chats(
    chats: List[Dict[str, Any]],
    user_id: str,
    users: Dict[str, Dict[str, Any]],
    query: str = "",
    active_filter: str = "all",
) -> List[Dict[str, Any]]:
    """
    Chat list as the user sees it.

    Each chat must carry its ``userSettings`` for ``user_id``. Archived chats
    only show under the "archived" filter. Pinned chats sort first, then by
    last activity, newest first.
    """
    if active_filter not in CHAT_FILTERS:
        raise InvalidInput("invalid_filter", valid=list(CHAT_FILTERS))

    normalized = (query or "").lower().strip()
    result = []
    for chat in chats:
        settings = chat.get("userSettings") or {}
        archived = bool(settings.get("isArchived"))

        if active_filter == "archived":
            if not archived:
                continue
        elif archived:
            continue

        if active_filter == "unread" and not settings.get("unreadCount", 0) > 0:
            continue
        if active_filter == "groups" and chat.get("type") != "group":
            continue
        if normalized and not _matches_query(chat, user_id, normalized, users):
            continue
        result.append(chat)

    result.sort(key=lambda c: sort_key_datetime(c.get("updatedAt")), reverse=True)
    result.sort(key=lambda c: not (c.get("userSettings") or {}).get("isPinned", False))
    return result
