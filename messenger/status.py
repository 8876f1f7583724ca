"""
Status updates: image, video or text posts that expire after a day.

Who may see a status is decided per post by ``privacy``:

- ``contacts``: people the owner has a 1:1 chat with
- ``followers``: people following the owner
- ``followings``: people the owner follows
- ``all``: any of the above
- ``selected``: only the ids in ``selectedContacts``

Blocking in either direction hides a status regardless of its privacy.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from .constants import (
    DEFAULT_STATUS_PRIVACY,
    MAX_STATUS_TEXT_LENGTH,
    STATUS_PRIVACY_OPTIONS,
    STATUS_TTL_HOURS,
    STATUS_TYPES,
)
from .errors import InvalidInput, NotFound, PermissionDenied
from .follows import has_blocked
from .utils import generate_id, normalize_datetime, random_suffix, sort_key_datetime


def new_status(user_id: str, payload: Dict[str, Any], now) -> Dict[str, Any]:
    status_type = payload.get("type") or "image"
    if status_type not in STATUS_TYPES:
        raise InvalidInput("invalid_status_type", valid=list(STATUS_TYPES))

    text = (payload.get("text") or "").strip() or None
    media_url = payload.get("media_url") or None
    if status_type == "text":
        if not text:
            raise InvalidInput("missing_status_text")
        if len(text) > MAX_STATUS_TEXT_LENGTH:
            raise InvalidInput("status_text_too_long", maxLength=MAX_STATUS_TEXT_LENGTH)
    elif not media_url:
        raise InvalidInput("missing_media_url")

    privacy = payload.get("privacy") or DEFAULT_STATUS_PRIVACY
    if privacy not in STATUS_PRIVACY_OPTIONS:
        raise InvalidInput("invalid_privacy", valid=list(STATUS_PRIVACY_OPTIONS))
    selected = payload.get("selected_contacts") or []
    if not isinstance(selected, list):
        raise InvalidInput("invalid_selected_contacts")
    if privacy == "selected" and not selected:
        raise InvalidInput("missing_selected_contacts")

    return {
        "id": generate_id("status", user_id, random_suffix(4)),
        "userId": user_id,
        "type": status_type,
        "mediaUrl": media_url,
        "text": text,
        "caption": payload.get("caption") or None,
        "backgroundColor": payload.get("background_color") or None,
        "timestamp": now,
        "expiresAt": now + timedelta(hours=STATUS_TTL_HOURS),
        "viewers": [],
        "privacy": privacy,
        "selectedContacts": [str(uid) for uid in selected if uid != user_id],
    }


def is_expired(status: Dict[str, Any], now) -> bool:
    expires_at = normalize_datetime(status.get("expiresAt"))
    return expires_at is None or expires_at <= now


def require_active(status: Optional[Dict[str, Any]], now) -> Dict[str, Any]:
    if not status or is_expired(status, now):
        raise NotFound("status_not_found")
    return status


def require_owner(status: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    if not status:
        raise NotFound("status_not_found")
    if status.get("userId") != user_id:
        raise PermissionDenied("not_your_status")
    return status


def can_view(status: Dict[str, Any], viewer_id: str, viewer: Dict[str, Any],
             owner: Optional[Dict[str, Any]], contact_ids: Iterable[str]) -> bool:
    owner_id = status.get("userId")
    if owner_id == viewer_id:
        return True
    if has_blocked(owner, viewer_id) or has_blocked(viewer, owner_id):
        return False

    privacy = status.get("privacy") or DEFAULT_STATUS_PRIVACY
    is_contact = owner_id in set(contact_ids)
    is_follower = owner_id in (viewer.get("following") or [])
    is_followed = owner_id in (viewer.get("followers") or [])

    if privacy == "contacts":
        return is_contact
    if privacy == "followers":
        return is_follower
    if privacy == "followings":
        return is_followed
    if privacy == "all":
        return is_contact or is_follower or is_followed
    if privacy == "selected":
        return viewer_id in (status.get("selectedContacts") or [])
    return False


def has_viewed(status: Dict[str, Any], viewer_id: str) -> bool:
    return any(v.get("userId") == viewer_id for v in status.get("viewers") or [])


def for_viewer(status: Dict[str, Any], viewer_id: str) -> Dict[str, Any]:
    """Only the owner sees who viewed a status; everyone else sees their own flag."""
    view = dict(status)
    if status.get("userId") == viewer_id:
        view["viewCount"] = len(status.get("viewers") or [])
    else:
        view.pop("viewers", None)
        view.pop("selectedContacts", None)
        view["viewed"] = has_viewed(status, viewer_id)
    return view


def visible_statuses(statuses: Iterable[Dict[str, Any]], viewer_id: str, viewer: Dict[str, Any],
                     owners: Dict[str, Dict[str, Any]], contact_ids: Iterable[str], now) -> List[Dict[str, Any]]:
    """Active statuses the viewer may see, newest first."""
    contact_ids = set(contact_ids)
    visible = [
        for_viewer(s, viewer_id) for s in statuses
        if not is_expired(s, now) and can_view(s, viewer_id, viewer, owners.get(s.get("userId")), contact_ids)
    ]
    visible.sort(key=lambda s: sort_key_datetime(s.get("timestamp")), reverse=True)
    return visible


def view_update(status: Dict[str, Any], viewer_id: str, now) -> Optional[Dict[str, Any]]:
    """Record a view. Owners viewing their own status and repeat views write nothing."""
    require_active(status, now)
    if status.get("userId") == viewer_id or has_viewed(status, viewer_id):
        return None
    viewers = list(status.get("viewers") or [])
    viewers.append({"userId": viewer_id, "viewedAt": now})
    return {"viewers": viewers}
