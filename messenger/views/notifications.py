import logging
from typing import Any, Dict, Optional

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import notifications
from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..errors import MessengerError
from ..firebase_service import NOTIFICATIONS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, query_int, resolve_user
from ..utils import generate_id, random_suffix

logger = logging.getLogger("messenger")


def notify(user_id: str, actor_id: str, notification_type: str,
           metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Store an in-app notification. Returns its id, or None if nothing was written."""
    record = notifications.new_notification(user_id, actor_id, notification_type, timezone.now(), metadata)
    if record is None:
        return None

    notification_id = generate_id("notif", random_suffix(6))
    if not firestore_service.set_document(NOTIFICATIONS, notification_id, record):
        logger.warning(f"[NOTIFY] Failed to store {notification_type} for user={user_id}")
        return None
    return notification_id


@csrf_exempt
def notification_list(request):
    """
    List the user's notifications, newest first, with the unread count.
    """
    logger.info(f"[NOTIFICATIONS/LIST] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    limit = query_int(request, "limit", DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    items = firestore_service.query_documents(
        NOTIFICATIONS,
        [("userId", "==", user_id)],
        order_by="createdAt",
        descending=True,
        limit=limit,
    )
    if items is None:
        return JsonResponse({"error": "failed_to_list_notifications"}, status=500)

    return JsonResponse({
        "notifications": items,
        "unreadCount": notifications.unread_count(items),
    })


@csrf_exempt
def notification_read(request, notification_id):
    logger.info(f"[NOTIFICATIONS/READ] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        notifications.require_owned(firestore_service.get_document(NOTIFICATIONS, notification_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.update_document(NOTIFICATIONS, notification_id, {"read": True}):
        return JsonResponse({"error": "failed_to_update_notification"}, status=500)

    return JsonResponse({"success": True, "id": notification_id, "read": True})


@csrf_exempt
def notification_read_all(request):
    logger.info(f"[NOTIFICATIONS/READ_ALL] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    unread = firestore_service.query_documents(NOTIFICATIONS, [
        ("userId", "==", user_id),
        ("read", "==", False),
    ])
    if unread is None:
        return JsonResponse({"error": "failed_to_list_notifications"}, status=500)

    updated = firestore_service.batch_update(NOTIFICATIONS, {n["id"]: {"read": True} for n in unread})

    return JsonResponse({"success": True, "updatedCount": updated})


@csrf_exempt
def notification_delete(request, notification_id):
    logger.info(f"[NOTIFICATIONS/DELETE] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        notifications.require_owned(firestore_service.get_document(NOTIFICATIONS, notification_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.delete_document(NOTIFICATIONS, notification_id):
        return JsonResponse({"error": "failed_to_delete_notification"}, status=500)

    return JsonResponse({"success": True, "id": notification_id})
