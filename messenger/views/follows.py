import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import follows
from ..constants import DEFAULT_PAGE_SIZE, FOLLOW_ACCEPTED, FOLLOW_PENDING, MAX_PAGE_SIZE
from ..errors import MessengerError, NotFound
from ..firebase_service import FOLLOWS, USERS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, query_int, resolve_user
from .notifications import notify

logger = logging.getLogger("messenger")


def _link(follower_id, following_id, add):
    """Mirror an accepted relationship on both user documents."""
    firestore_service.run_transaction(
        USERS, follower_id, lambda user: follows.link_updates(user, "following", "followingCount", following_id, add)
    )
    firestore_service.run_transaction(
        USERS, following_id, lambda user: follows.link_updates(user, "followers", "followersCount", follower_id, add)
    )


def _user_post(request, tag):
    """Shared POST preamble. Returns (user_id, error_response)."""
    logger.info(f"[{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return None, HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return None, error

    user_id, error = resolve_user(request, data)
    if error:
        return None, error

    if not firestore_service.is_available():
        return None, firestore_unavailable()

    return user_id, None


def _user_get(request, tag):
    logger.info(f"[{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return None, HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return None, error

    if not firestore_service.is_available():
        return None, firestore_unavailable()

    return user_id, None


def _relationships(request, field, user_id, status):
    return firestore_service.query_documents(
        FOLLOWS,
        [(field, "==", user_id), ("status", "==", status)],
        order_by="createdAt",
        descending=True,
        limit=query_int(request, "limit", DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE),
    )


@csrf_exempt
def follow_user(request, target_id):
    """
    Follow ``target_id``. Private accounts get a pending request instead.
    Following again is a no-op that returns the existing relationship.
    """
    user_id, error = _user_post(request, "FOLLOW")
    if error:
        return error

    relationship_id = follows.relationship_id(user_id, target_id)
    existing = firestore_service.get_document(FOLLOWS, relationship_id)
    if existing:
        return JsonResponse({"success": True, "created": False, "relationship": existing,
                             **follows.follow_state(existing)})

    try:
        relationship = follows.new_relationship(
            user_id, firestore_service.get_user(user_id), target_id, firestore_service.get_user(target_id),
            timezone.now(),
        )
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.set_document(FOLLOWS, relationship_id, relationship):
        return JsonResponse({"error": "failed_to_follow"}, status=500)

    if relationship["status"] == FOLLOW_ACCEPTED:
        _link(user_id, target_id, add=True)

    reverse = firestore_service.get_document(FOLLOWS, follows.relationship_id(target_id, user_id))
    notify(target_id, user_id, follows.follow_notification_type(relationship, reverse),
           {"relationshipId": relationship_id})

    logger.info(f"[FOLLOW] {user_id} -> {target_id} ({relationship['status']})")

    return JsonResponse({"success": True, "created": True, "relationship": relationship,
                         **follows.follow_state(relationship)}, status=201)


@csrf_exempt
def unfollow_user(request, target_id):
    """
    Stop following ``target_id``, or withdraw a pending request.
    """
    user_id, error = _user_post(request, "UNFOLLOW")
    if error:
        return error

    relationship_id = follows.relationship_id(user_id, target_id)
    existing = firestore_service.get_document(FOLLOWS, relationship_id)
    if not existing:
        return JsonResponse({"success": True, "wasFollowing": False})

    if not firestore_service.delete_document(FOLLOWS, relationship_id):
        return JsonResponse({"error": "failed_to_unfollow"}, status=500)

    was_following = existing.get("status") == FOLLOW_ACCEPTED
    if was_following:
        _link(user_id, target_id, add=False)

    logger.info(f"[UNFOLLOW] {user_id} -> {target_id} (was {existing.get('status')})")

    return JsonResponse({"success": True, "wasFollowing": was_following})


@csrf_exempt
def follow_status(request, target_id):
    user_id, error = _user_get(request, "FOLLOW/STATUS")
    if error:
        return error

    outgoing = firestore_service.get_document(FOLLOWS, follows.relationship_id(user_id, target_id))
    incoming = firestore_service.get_document(FOLLOWS, follows.relationship_id(target_id, user_id))
    state = follows.follow_state(outgoing)
    state["followsYou"] = follows.follow_state(incoming)["isFollowing"]
    state["isMutual"] = state["isFollowing"] and state["followsYou"]
    return JsonResponse(state)


@csrf_exempt
def follower_list(request, target_id):
    _, error = _user_get(request, "FOLLOW/FOLLOWERS")
    if error:
        return error

    records = _relationships(request, "followingId", target_id, FOLLOW_ACCEPTED)
    if records is None:
        return JsonResponse({"error": "failed_to_list_followers"}, status=500)
    return JsonResponse({"followers": records, "count": len(records)})


@csrf_exempt
def following_list(request, target_id):
    _, error = _user_get(request, "FOLLOW/FOLLOWING")
    if error:
        return error

    records = _relationships(request, "followerId", target_id, FOLLOW_ACCEPTED)
    if records is None:
        return JsonResponse({"error": "failed_to_list_following"}, status=500)
    return JsonResponse({"following": records, "count": len(records)})


@csrf_exempt
def follow_stats(request, target_id):
    _, error = _user_get(request, "FOLLOW/STATS")
    if error:
        return error

    try:
        stats = follows.follow_stats(firestore_service.get_user(target_id))
    except MessengerError as exc:
        return error_response(exc)
    return JsonResponse({"userId": target_id, "stats": stats})


@csrf_exempt
def follow_requests(request):
    """
    Pending requests addressed to the user, or with ``direction=outgoing``
    the ones the user has sent.
    """
    user_id, error = _user_get(request, "FOLLOW/REQUESTS")
    if error:
        return error

    outgoing = request.GET.get("direction") == "outgoing"
    field = "followerId" if outgoing else "followingId"
    records = _relationships(request, field, user_id, FOLLOW_PENDING)
    if records is None:
        return JsonResponse({"error": "failed_to_list_requests"}, status=500)
    return JsonResponse({
        "requests": records,
        "count": len(records),
        "direction": "outgoing" if outgoing else "incoming",
    })


@csrf_exempt
def follow_request_accept(request, follower_id):
    user_id, error = _user_post(request, "FOLLOW/ACCEPT")
    if error:
        return error

    relationship_id = follows.relationship_id(follower_id, user_id)
    now = timezone.now()
    try:
        updated = firestore_service.run_transaction(
            FOLLOWS, relationship_id, lambda current: follows.accept_update(current, user_id, now)
        )
        if updated is None:
            raise NotFound("follow_request_not_found")
    except MessengerError as exc:
        return error_response(exc)

    _link(follower_id, user_id, add=True)
    notify(follower_id, user_id, "follow_accepted", {"relationshipId": relationship_id})

    logger.info(f"[FOLLOW/ACCEPT] {user_id} accepted {follower_id}")

    return JsonResponse({"success": True, "relationship": updated})


@csrf_exempt
def follow_request_reject(request, follower_id):
    user_id, error = _user_post(request, "FOLLOW/REJECT")
    if error:
        return error

    relationship_id = follows.relationship_id(follower_id, user_id)
    try:
        follows.require_pending_request(firestore_service.get_document(FOLLOWS, relationship_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.delete_document(FOLLOWS, relationship_id):
        return JsonResponse({"error": "failed_to_reject_request"}, status=500)

    return JsonResponse({"success": True, "followerId": follower_id})


@csrf_exempt
def user_block(request, target_id):
    """
    Block ``target_id``: no messages or calls in either direction, no new
    follows, and their statuses are hidden. Existing follows are removed.
    """
    user_id, error = _user_post(request, "USER/BLOCK")
    if error:
        return error

    try:
        if not firestore_service.get_user(target_id):
            raise NotFound("user_not_found")
        updated = firestore_service.run_transaction(
            USERS, user_id, lambda user: follows.block_update(user, target_id)
        )
    except MessengerError as exc:
        return error_response(exc)
    if updated is None:
        return JsonResponse({"error": "failed_to_block_user"}, status=500)

    for follower_id, following_id in ((user_id, target_id), (target_id, user_id)):
        relationship_id = follows.relationship_id(follower_id, following_id)
        existing = firestore_service.get_document(FOLLOWS, relationship_id)
        if existing and firestore_service.delete_document(FOLLOWS, relationship_id):
            if existing.get("status") == FOLLOW_ACCEPTED:
                _link(follower_id, following_id, add=False)

    logger.info(f"[USER/BLOCK] {user_id} blocked {target_id}")

    return JsonResponse({"success": True, "blockedUsers": updated.get("blockedUsers", [])})


@csrf_exempt
def user_unblock(request, target_id):
    user_id, error = _user_post(request, "USER/UNBLOCK")
    if error:
        return error

    updated = firestore_service.run_transaction(
        USERS, user_id, lambda user: follows.unblock_update(user, target_id)
    )
    if updated is None:
        return JsonResponse({"error": "failed_to_unblock_user"}, status=500)

    return JsonResponse({"success": True, "blockedUsers": updated.get("blockedUsers", [])})


@csrf_exempt
def blocked_users(request):
    user_id, error = _user_get(request, "USER/BLOCKED")
    if error:
        return error

    user = firestore_service.get_user(user_id)
    if user is None:
        return JsonResponse({"error": "user_not_found"}, status=404)

    blocked = user.get("blockedUsers") or []
    return JsonResponse({"blockedUsers": blocked, "count": len(blocked)})
