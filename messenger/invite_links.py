from datetime import timedelta
from typing import Any, Dict, Optional

from .constants import INVITE_LINK_BASE_URL, INVITE_LINK_EXPIRY_HOURS, INVITE_LINK_ID_LENGTH
from .errors import Conflict, InvalidInput, NotFound
from .utils import generate_link_id, normalize_datetime


def new_link(group_id: str, created_by: str, now, expiry_hours=INVITE_LINK_EXPIRY_HOURS,
             max_uses: Optional[int] = None) -> Dict[str, Any]:
    try:
        expiry_hours = float(expiry_hours)
    except (TypeError, ValueError):
        raise InvalidInput("invalid_expiry_hours")
    if expiry_hours <= 0:
        raise InvalidInput("invalid_expiry_hours")
    if max_uses is not None:
        if not isinstance(max_uses, int) or isinstance(max_uses, bool) or max_uses <= 0:
            raise InvalidInput("invalid_max_uses")

    return {
        "linkId": generate_link_id(INVITE_LINK_ID_LENGTH),
        "groupId": group_id,
        "createdBy": created_by,
        "createdAt": now,
        "expiresAt": now + timedelta(hours=expiry_hours),
        "uses": 0,
        "maxUses": max_uses,
        "isActive": True,
    }


def link_url(link_id: str) -> str:
    return f"{INVITE_LINK_BASE_URL.rstrip('/')}/#/join/{link_id}"


def is_expired(link: Dict[str, Any], now) -> bool:
    expires_at = normalize_datetime(link.get("expiresAt"))
    return expires_at is not None and expires_at < now


def validate(link: Optional[Dict[str, Any]], now) -> str:
    """Return the link's group id, or raise why it cannot be used."""
    if not link:
        raise NotFound("invalid_invite_link", "Invalid invite link")
    if not link.get("isActive"):
        raise Conflict("invite_link_revoked", "This link has been revoked")
    if is_expired(link, now):
        raise Conflict("invite_link_expired", "This link has expired")
    max_uses = link.get("maxUses")
    if max_uses and link.get("uses", 0) >= max_uses:
        raise Conflict("invite_link_exhausted", "This link has reached its maximum uses")
    return link["groupId"]


def usage_update(link: Dict[str, Any], now) -> Dict[str, Any]:
    """Count one use, re-checking validity under the same read."""
    validate(link, now)
    return {"uses": link.get("uses", 0) + 1}


def public_view(link: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "linkId": link["linkId"],
        "url": link_url(link["linkId"]),
        "groupId": link["groupId"],
        "expiresAt": link.get("expiresAt"),
        "uses": link.get("uses", 0),
        "maxUses": link.get("maxUses"),
        "isActive": link.get("isActive", False),
    }
