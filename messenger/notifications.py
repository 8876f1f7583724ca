from typing import Any, Dict, Iterable, Optional

from .constants import NOTIFICATION_TYPES
from .errors import InvalidInput, NotFound, PermissionDenied


def new_notification(user_id: str, actor_id: str, notification_type: str, now,
                     metadata: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Notification record, or None when a user would be notifying themselves."""
    if notification_type not in NOTIFICATION_TYPES:
        raise InvalidInput("invalid_notification_type", valid=list(NOTIFICATION_TYPES))
    if user_id == actor_id:
        return None
    return {
        "userId": user_id,
        "actorId": actor_id,
        "type": notification_type,
        "read": False,
        "createdAt": now,
        "metadata": metadata or {},
    }


def require_owned(notification: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    if not notification:
        raise NotFound("notification_not_found")
    if notification.get("userId") != user_id:
        raise PermissionDenied("not_your_notification")
    return notification


def unread_count(notifications: Iterable[Dict[str, Any]]) -> int:
    return sum(1 for n in notifications if not n.get("read"))
