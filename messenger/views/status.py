import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import status
from ..errors import MessengerError, NotFound
from ..firebase_service import CHATS, STATUSES, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user

logger = logging.getLogger("messenger")

# Firestore caps "in" filters at 30 values.
IN_QUERY_CHUNK = 30


def _contact_ids(user_id):
    """Users ``user_id`` shares a 1:1 chat with."""
    records = firestore_service.query_documents(CHATS, [
        ("participants", "array-contains", user_id),
        ("type", "==", "individual"),
    ]) or []
    return {uid for chat in records for uid in chat.get("participants") or [] if uid != user_id}


def _active_statuses(owner_ids, now):
    owner_ids = sorted(owner_ids)
    found = []
    for start in range(0, len(owner_ids), IN_QUERY_CHUNK):
        chunk = owner_ids[start:start + IN_QUERY_CHUNK]
        records = firestore_service.query_documents(STATUSES, [
            ("userId", "in", chunk),
            ("expiresAt", ">", now),
        ])
        if records is None:
            return None
        found.extend(records)
    return found


@csrf_exempt
def status_collection(request):
    """
    POST posts a status; GET lists the active statuses the user may see
    (``user`` narrows the feed to one owner).
    """
    logger.info(f"[STATUS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "POST":
        return _post_status(request)
    if request.method == "GET":
        return _status_feed(request)
    return HttpResponseNotAllowed(["GET", "POST"])


def _post_status(request):
    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        record = status.new_status(user_id, data, timezone.now())
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.set_document(STATUSES, record["id"], record):
        return JsonResponse({"error": "failed_to_post_status"}, status=500)

    logger.info(f"[STATUS/POST] {record['id']} by {user_id} ({record['type']}, {record['privacy']})")

    return JsonResponse({"success": True, "status": status.for_viewer(record, user_id)}, status=201)


def _status_feed(request):
    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    viewer = firestore_service.get_user(user_id)
    if viewer is None:
        return JsonResponse({"error": "user_not_found"}, status=404)

    now = timezone.now()
    contact_ids = _contact_ids(user_id)
    owner_ids = {user_id} | contact_ids | set(viewer.get("following") or []) | set(viewer.get("followers") or [])
    only = request.GET.get("user")
    if only:
        owner_ids &= {only}

    records = _active_statuses(owner_ids, now)
    if records is None:
        return JsonResponse({"error": "failed_to_list_statuses"}, status=500)

    owners = firestore_service.get_users({r["userId"] for r in records})
    visible = status.visible_statuses(records, user_id, viewer, owners, contact_ids, now)
    return JsonResponse({"statuses": visible, "count": len(visible)})


@csrf_exempt
def status_view(request, status_id):
    """
    Record that the user has seen a status.
    """
    logger.info(f"[STATUS/VIEW] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    now = timezone.now()
    try:
        record = status.require_active(firestore_service.get_document(STATUSES, status_id), now)
        viewer = firestore_service.get_user(user_id) or {}
        owner = firestore_service.get_user(record["userId"])
        if not status.can_view(record, user_id, viewer, owner, _contact_ids(user_id)):
            raise NotFound("status_not_found")
        updated = firestore_service.run_transaction(
            STATUSES, status_id, lambda current: status.view_update(current, user_id, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if updated is None:
        return JsonResponse({"error": "failed_to_update_status"}, status=500)
    return JsonResponse({"success": True, "statusId": status_id, "viewed": True})


@csrf_exempt
def status_viewers(request, status_id):
    logger.info(f"[STATUS/VIEWERS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        record = status.require_owner(firestore_service.get_document(STATUSES, status_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    viewers = record.get("viewers") or []
    return JsonResponse({"statusId": status_id, "viewers": viewers, "count": len(viewers)})


@csrf_exempt
def status_delete(request, status_id):
    logger.info(f"[STATUS/DELETE] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        status.require_owner(firestore_service.get_document(STATUSES, status_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.delete_document(STATUSES, status_id):
        return JsonResponse({"error": "failed_to_delete_status"}, status=500)

    logger.info(f"[STATUS/DELETE] {status_id} deleted by {user_id}")

    return JsonResponse({"success": True, "statusId": status_id})
