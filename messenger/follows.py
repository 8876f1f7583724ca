"""
Follow relationships, follow requests and blocking between users.

A relationship document ``<followerId>_<followingId>`` is ``accepted`` at
once for public accounts and ``pending`` for private ones (``isPrivate`` on
the user) until the followed user accepts it. Accepted relationships are
mirrored on both user documents as ``following``/``followers`` arrays with
their counts.
"""
from typing import Any, Dict, Optional

from .constants import FOLLOW_ACCEPTED, FOLLOW_PENDING
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied


def relationship_id(follower_id: str, following_id: str) -> str:
    return f"{follower_id}_{following_id}"


def has_blocked(user: Optional[Dict[str, Any]], other_id: str) -> bool:
    return other_id in ((user or {}).get("blockedUsers") or [])


def require_not_blocked(user_id: str, user: Optional[Dict[str, Any]],
                        other_id: str, other: Optional[Dict[str, Any]]) -> None:
    """Either side having blocked the other stops direct contact."""
    if has_blocked(user, other_id) or has_blocked(other, user_id):
        raise PermissionDenied("user_blocked")


def block_update(user: Dict[str, Any], target_id: str) -> Optional[Dict[str, Any]]:
    if target_id == user.get("id"):
        raise InvalidInput("cannot_block_self")
    blocked = list(user.get("blockedUsers") or [])
    if target_id in blocked:
        return None
    blocked.append(target_id)
    return {"blockedUsers": blocked}


def unblock_update(user: Dict[str, Any], target_id: str) -> Optional[Dict[str, Any]]:
    blocked = list(user.get("blockedUsers") or [])
    if target_id not in blocked:
        return None
    return {"blockedUsers": [uid for uid in blocked if uid != target_id]}


def new_relationship(follower_id: str, follower: Optional[Dict[str, Any]],
                     following_id: str, following: Optional[Dict[str, Any]], now) -> Dict[str, Any]:
    if follower_id == following_id:
        raise InvalidInput("cannot_follow_self")
    if not following:
        raise NotFound("user_not_found")
    require_not_blocked(follower_id, follower, following_id, following)

    status = FOLLOW_PENDING if following.get("isPrivate") else FOLLOW_ACCEPTED
    return {
        "id": relationship_id(follower_id, following_id),
        "followerId": follower_id,
        "followingId": following_id,
        "status": status,
        "createdAt": now,
        "acceptedAt": now if status == FOLLOW_ACCEPTED else None,
    }


def follow_state(relationship: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    status = (relationship or {}).get("status")
    return {
        "isFollowing": status == FOLLOW_ACCEPTED,
        "isPending": status == FOLLOW_PENDING,
        "status": status,
    }


def require_pending_request(relationship: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    """The pending request addressed to ``user_id``."""
    if not relationship or relationship.get("followingId") != user_id:
        raise NotFound("follow_request_not_found")
    if relationship.get("status") != FOLLOW_PENDING:
        raise Conflict("no_pending_request", currentStatus=relationship.get("status"))
    return relationship


def accept_update(relationship: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    require_pending_request(relationship, user_id)
    return {"status": FOLLOW_ACCEPTED, "acceptedAt": now}


def link_updates(user: Dict[str, Any], list_field: str, count_field: str,
                 other_id: str, add: bool) -> Optional[Dict[str, Any]]:
    """
    Add or remove ``other_id`` in one of the user's follow arrays. The count
    is recomputed from the array so the two never drift apart.
    """
    ids = list(user.get(list_field) or [])
    if add == (other_id in ids):
        return None
    if add:
        ids.append(other_id)
    else:
        ids.remove(other_id)
    return {list_field: ids, count_field: len(ids)}


def follow_notification_type(relationship: Dict[str, Any], reverse: Optional[Dict[str, Any]]) -> str:
    """What the followed user is told about a new relationship."""
    if relationship["status"] == FOLLOW_PENDING:
        return "follow_request"
    if follow_state(reverse)["isFollowing"]:
        return "follow_back"
    return "new_follower"


def follow_stats(user: Optional[Dict[str, Any]]) -> Dict[str, int]:
    if not user:
        raise NotFound("user_not_found")
    return {
        "followersCount": user.get("followersCount") or len(user.get("followers") or []),
        "followingCount": user.get("followingCount") or len(user.get("following") or []),
    }
