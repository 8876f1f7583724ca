"""
Group roles, permission policies and membership changes.

All functions take the chat document and return the top-level fields to
write, so callers can apply them inside a Firestore transaction.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import (
    DEFAULT_GROUP_SETTINGS,
    MAX_GROUP_DESCRIPTION_LENGTH,
    ROLE_ADMIN,
    ROLE_MEMBER,
    ROLE_OWNER,
)
from .chats import require_group, validate_group_name
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied

POLICIES = ("all", "admins")
WALKIE_TALKIE_POLICIES = ("all", "admins", "specific")


def get_settings(chat: Dict[str, Any]) -> Dict[str, Any]:
    settings = dict(DEFAULT_GROUP_SETTINGS)
    settings.update(chat.get("groupSettings") or {})
    return settings


def role_of(chat: Dict[str, Any], user_id: str) -> Optional[str]:
    if user_id not in (chat.get("participants") or []):
        return None
    return (chat.get("groupRoles") or {}).get(user_id, ROLE_MEMBER)


def is_admin(chat: Dict[str, Any], user_id: str) -> bool:
    return role_of(chat, user_id) in (ROLE_ADMIN, ROLE_OWNER)


def _allowed(chat: Dict[str, Any], user_id: str, policy: str) -> bool:
    if role_of(chat, user_id) is None:
        return False
    if policy == "admins":
        return is_admin(chat, user_id)
    return policy == "all"


def can_edit_info(chat, user_id) -> bool:
    return _allowed(chat, user_id, get_settings(chat)["editInfo"])


def can_send_messages(chat, user_id) -> bool:
    if chat.get("type") != "group":
        return user_id in (chat.get("participants") or [])
    return _allowed(chat, user_id, get_settings(chat)["sendMessages"])


def can_add_members(chat, user_id) -> bool:
    return _allowed(chat, user_id, get_settings(chat)["addMembers"])


def has_walkie_talkie_permission(chat, user_id) -> bool:
    settings = get_settings(chat)
    if not settings["walkieTalkieEnabled"] or role_of(chat, user_id) is None:
        return False
    policy = settings["walkieTalkiePermission"]
    if policy == "specific":
        return user_id in (settings.get("walkieTalkieAllowedUsers") or [])
    return _allowed(chat, user_id, policy)


def has_music_sharing_permission(chat, user_id) -> bool:
    if chat.get("type") != "group":
        return user_id in (chat.get("participants") or [])
    settings = get_settings(chat)
    if not settings["musicSharingEnabled"]:
        return False
    return _allowed(chat, user_id, settings["musicSharingPermission"])


def permissions_for(chat: Dict[str, Any], user_id: str) -> Dict[str, bool]:
    return {
        "editInfo": can_edit_info(chat, user_id),
        "sendMessages": can_send_messages(chat, user_id),
        "addMembers": can_add_members(chat, user_id),
        "walkieTalkie": has_walkie_talkie_permission(chat, user_id),
        "musicSharing": has_music_sharing_permission(chat, user_id),
        "isAdmin": is_admin(chat, user_id),
    }


# =========================================================================
# Info and settings
# =========================================================================

def info_updates(chat: Dict[str, Any], user_id: str, changes: Dict[str, Any], now) -> Dict[str, Any]:
    require_group(chat)
    if not can_edit_info(chat, user_id):
        raise PermissionDenied("cannot_edit_group_info")

    updates = {}
    if "groupName" in changes:
        updates["groupName"] = validate_group_name(changes["groupName"])
    if "groupDescription" in changes:
        description = (changes["groupDescription"] or "").strip()
        if len(description) > MAX_GROUP_DESCRIPTION_LENGTH:
            raise InvalidInput("group_description_too_long", max=MAX_GROUP_DESCRIPTION_LENGTH)
        updates["groupDescription"] = description
    if "groupAvatar" in changes:
        updates["groupAvatar"] = changes["groupAvatar"] or None
    if not updates:
        raise InvalidInput("no_changes", valid=["groupName", "groupDescription", "groupAvatar"])
    updates["updatedAt"] = now
    return updates


def _check_setting(key: str, value: Any) -> None:
    if key in ("editInfo", "sendMessages", "addMembers", "musicSharingPermission"):
        if value not in POLICIES:
            raise InvalidInput("invalid_setting_value", setting=key, valid=list(POLICIES))
    elif key == "walkieTalkiePermission":
        if value not in WALKIE_TALKIE_POLICIES:
            raise InvalidInput("invalid_setting_value", setting=key, valid=list(WALKIE_TALKIE_POLICIES))
    elif key == "walkieTalkieAllowedUsers":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise InvalidInput("invalid_setting_value", setting=key)
    elif not isinstance(value, bool):
        raise InvalidInput("invalid_setting_value", setting=key)


def settings_updates(chat: Dict[str, Any], user_id: str, changes: Dict[str, Any], now) -> Dict[str, Any]:
    require_group(chat)
    if not is_admin(chat, user_id):
        raise PermissionDenied("admin_required")
    if not changes:
        raise InvalidInput("no_changes")

    settings = get_settings(chat)
    for key, value in changes.items():
        if key not in DEFAULT_GROUP_SETTINGS:
            raise InvalidInput("invalid_setting", setting=key)
        _check_setting(key, value)
        settings[key] = value

    return {"groupSettings": settings, "updatedAt": now}


# =========================================================================
# Membership
# =========================================================================

def add_participants_updates(chat: Dict[str, Any], user_id: str, new_ids: Iterable[str], now) -> Tuple[Dict[str, Any], List[str]]:
    """Returns (updates, ids actually added)."""
    require_group(chat)
    if not can_add_members(chat, user_id):
        raise PermissionDenied("cannot_add_members")

    participants = list(chat.get("participants") or [])
    roles = dict(chat.get("groupRoles") or {})
    added = []
    for pid in new_ids or []:
        if pid and pid not in participants:
            participants.append(pid)
            roles[pid] = ROLE_MEMBER
            added.append(pid)

    if not added:
        raise Conflict("already_members")

    return {
        "participants": participants,
        "groupRoles": roles,
        "updatedAt": now,
    }, added


def join_updates(chat: Dict[str, Any], user_id: str, now) -> Optional[Dict[str, Any]]:
    """Membership through an invite link. None when already a member."""
    require_group(chat)
    if user_id in (chat.get("participants") or []):
        return None
    roles = dict(chat.get("groupRoles") or {})
    roles[user_id] = ROLE_MEMBER
    return {
        "participants": list(chat.get("participants") or []) + [user_id],
        "groupRoles": roles,
        "updatedAt": now,
    }


def _without(chat: Dict[str, Any], target_id: str) -> Dict[str, Any]:
    participants = [p for p in chat.get("participants") or [] if p != target_id]
    roles = {k: v for k, v in (chat.get("groupRoles") or {}).items() if k != target_id}
    return {"participants": participants, "groupRoles": roles}


def remove_participant_updates(chat: Dict[str, Any], user_id: str, target_id: str, now) -> Dict[str, Any]:
    require_group(chat)
    actor_role = role_of(chat, user_id)
    target_role = role_of(chat, target_id)
    if target_role is None:
        raise NotFound("participant_not_found")
    if target_id == user_id:
        raise InvalidInput("use_leave_to_remove_self")
    if target_role == ROLE_OWNER:
        raise PermissionDenied("cannot_remove_owner")
    if actor_role not in (ROLE_ADMIN, ROLE_OWNER):
        raise PermissionDenied("admin_required")
    if target_role == ROLE_ADMIN and actor_role != ROLE_OWNER:
        raise PermissionDenied("owner_required")

    updates = _without(chat, target_id)
    updates["updatedAt"] = now
    return updates


def _next_owner(chat: Dict[str, Any], leaving_id: str) -> Optional[str]:
    remaining = [p for p in chat.get("participants") or [] if p != leaving_id]
    if not remaining:
        return None
    roles = chat.get("groupRoles") or {}
    for pid in remaining:
        if roles.get(pid) == ROLE_ADMIN:
            return pid
    return remaining[0]


def leave_updates(chat: Dict[str, Any], user_id: str, now) -> Optional[Dict[str, Any]]:
    """
    Updates for ``user_id`` leaving the group.

    Returns None when the last member leaves; the caller deletes the group.
    An owner hands over to the longest-standing admin, else to the next
    member in join order.
    """
    require_group(chat)
    role = role_of(chat, user_id)
    if role is None:
        raise PermissionDenied("not_a_participant")

    updates = _without(chat, user_id)
    if not updates["participants"]:
        return None

    if role == ROLE_OWNER:
        successor = _next_owner(chat, user_id)
        updates["groupRoles"][successor] = ROLE_OWNER
    updates["updatedAt"] = now
    return updates


def role_updates(chat: Dict[str, Any], user_id: str, target_id: str, new_role: str, now) -> Dict[str, Any]:
    require_group(chat)
    if new_role not in (ROLE_ADMIN, ROLE_MEMBER):
        raise InvalidInput("invalid_role", valid=[ROLE_ADMIN, ROLE_MEMBER])
    if role_of(chat, user_id) != ROLE_OWNER:
        raise PermissionDenied("owner_required")
    target_role = role_of(chat, target_id)
    if target_role is None:
        raise NotFound("participant_not_found")
    if target_role == ROLE_OWNER:
        raise InvalidInput("use_transfer_for_owner")

    roles = dict(chat.get("groupRoles") or {})
    roles[target_id] = new_role
    return {"groupRoles": roles, "updatedAt": now}


def transfer_ownership_updates(chat: Dict[str, Any], user_id: str, target_id: str, now) -> Dict[str, Any]:
    require_group(chat)
    if role_of(chat, user_id) != ROLE_OWNER:
        raise PermissionDenied("owner_required")
    if role_of(chat, target_id) is None:
        raise NotFound("participant_not_found")
    if target_id == user_id:
        raise InvalidInput("already_owner")

    roles = dict(chat.get("groupRoles") or {})
    roles[user_id] = ROLE_ADMIN
    roles[target_id] = ROLE_OWNER
    return {"groupRoles": roles, "updatedAt": now}
