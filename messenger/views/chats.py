import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, groups, messages
from ..errors import MessengerError, PermissionDenied
from ..firebase_service import CHATS, MESSAGES, USER_SETTINGS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user
from .notifications import notify

logger = logging.getLogger("messenger")


def _store_user_settings(chat_id, user_ids, now):
    for uid in user_ids:
        firestore_service.set_subdocument(CHATS, chat_id, USER_SETTINGS, uid, chats.default_user_settings(now))


def chat_view(chat, user_id):
    """Chat document as returned to ``user_id``: own settings and, for groups, permissions."""
    view = dict(chat)
    view["userSettings"] = (
        firestore_service.get_user_chat_settings(chat["id"], user_id)
        or chats.default_user_settings(chat.get("createdAt"))
    )
    if chat.get("type") == "group":
        view["permissions"] = groups.permissions_for(chat, user_id)
        view["role"] = groups.role_of(chat, user_id)
    return view


@csrf_exempt
def chat_collection(request):
    """
    GET lists the user's chats (``q`` search, ``filter``); POST creates one.
    """
    logger.info(f"[CHAT] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "GET":
        return _list_chats(request)
    if request.method == "POST":
        return _create_chat(request)
    return HttpResponseNotAllowed(["GET", "POST"])


def _list_chats(request):
    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    records = firestore_service.query_documents(CHATS, [("participants", "array-contains", user_id)])
    if records is None:
        return JsonResponse({"error": "failed_to_list_chats"}, status=500)

    participant_ids = set()
    for chat in records:
        participant_ids.update(chat.get("participants") or [])
        chat["userSettings"] = firestore_service.get_user_chat_settings(chat["id"], user_id) or {}
    users = firestore_service.get_users(participant_ids)

    try:
        result = chats.filter_and_sort_chats(
            records,
            user_id,
            users,
            query=request.GET.get("q", ""),
            active_filter=request.GET.get("filter", "all"),
        )
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({"chats": result, "count": len(result)})


def _create_chat(request):
    data, error = json_body(request)
    if error:
        return error

    logger.info(f"[CHAT/CREATE] Request data: {data}")

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    now = timezone.now()
    chat_type = data.get("type", "individual")

    try:
        if chat_type == "individual":
            contact_id = data.get("contact_id")
            existing = firestore_service.query_documents(CHATS, [
                ("participants", "array-contains", user_id),
                ("type", "==", "individual"),
            ]) or []
            found = chats.find_individual_chat(existing, user_id, contact_id) if contact_id else None
            if found:
                return JsonResponse({"success": True, "created": False, "chat": chat_view(found, user_id)})
            chat = chats.new_individual_chat(user_id, contact_id, now)
        elif chat_type == "group":
            chat = chats.new_group_chat(
                user_id,
                data.get("group_name"),
                data.get("participants") or [],
                now,
                description=data.get("group_description", ""),
                avatar=data.get("group_avatar"),
            )
        else:
            return JsonResponse({"error": "invalid_chat_type", "valid": ["individual", "group"]}, status=400)
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.set_document(CHATS, chat["id"], chat):
        return JsonResponse({"error": "failed_to_create_chat"}, status=500)

    _store_user_settings(chat["id"], chat["participants"], now)

    if chat_type == "group":
        for member_id in chat["participants"][1:]:
            notify(member_id, user_id, "added_to_group", {"chatId": chat["id"], "groupName": chat["groupName"]})

    logger.info(f"[CHAT/CREATE] Created {chat_type} chat {chat['id']}")

    return JsonResponse({"success": True, "created": True, "chat": chat_view(chat, user_id)}, status=201)


@csrf_exempt
def chat_detail(request, chat_id):
    """
    GET returns the chat; DELETE removes it (group owner only for groups).
    """
    logger.info(f"[CHAT/DETAIL] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method not in ("GET", "DELETE"):
        return HttpResponseNotAllowed(["GET", "DELETE"])

    data = None
    if request.method == "DELETE":
        data, error = json_body(request)
        if error:
            return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        if request.method == "GET":
            return JsonResponse({"chat": chat_view(chat, user_id)})
        if chat.get("type") == "group" and groups.role_of(chat, user_id) != "owner":
            raise PermissionDenied("owner_required")
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.delete_document(CHATS, chat_id):
        return JsonResponse({"error": "failed_to_delete_chat"}, status=500)

    logger.info(f"[CHAT/DELETE] Chat {chat_id} deleted by {user_id}")

    return JsonResponse({"success": True, "chatId": chat_id})


@csrf_exempt
def chat_settings(request, chat_id):
    """
    Pin / mute / archive / lock for the requesting user. Values are booleans
    or "toggle".
    """
    logger.info(f"[CHAT/SETTINGS] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    changes = {k: v for k, v in data.items() if k != "user_id"}
    try:
        chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        current = firestore_service.get_user_chat_settings(chat_id, user_id) or {}
        updates = chats.toggle_updates(current, changes)
    except MessengerError as exc:
        return error_response(exc)

    updates["updatedAt"] = timezone.now()
    if not firestore_service.set_subdocument(CHATS, chat_id, USER_SETTINGS, user_id, updates, merge=True):
        return JsonResponse({"error": "failed_to_update_settings"}, status=500)

    return JsonResponse({"success": True, "chatId": chat_id, "settings": {**current, **updates}})


@csrf_exempt
def chat_mark_read(request, chat_id):
    """
    Reset the user's unread count and mark the other participants' messages read.
    """
    logger.info(f"[CHAT/READ] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    firestore_service.set_subdocument(CHATS, chat_id, USER_SETTINGS, user_id, {"unreadCount": 0}, merge=True)

    records = firestore_service.query_documents(MESSAGES, [("chatId", "==", chat_id)]) or []
    updates = {}
    for message in records:
        if message.get("senderId") == user_id:
            continue
        update = messages.status_update(message, "read")
        if update:
            updates[message["id"]] = update
    updated = firestore_service.batch_update(MESSAGES, updates)

    return JsonResponse({"success": True, "chatId": chat_id, "markedRead": updated})
