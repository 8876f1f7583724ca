import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, follows, groups, link_preview, messages, polls, threads, translation
from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..errors import InvalidInput, MessengerError, PermissionDenied
from ..firebase_service import CHATS, MESSAGES, firestore_service
from ..http import error_response, firestore_unavailable, json_body, query_int, resolve_user
from ..push_service import push_service
from ..utils import normalize_datetime, run_async, sort_key_datetime

logger = logging.getLogger("messenger")


def load_message_for(user_id, message_id):
    """Return (message, chat) when ``user_id`` takes part in the message's chat."""
    message = messages.require_message(firestore_service.get_document(MESSAGES, message_id))
    chat = chats.require_participant(firestore_service.get_document(CHATS, message.get("chatId")), user_id)
    return message, chat


def _push_to_participants(chat, message, sender_id):
    sender = firestore_service.get_user(sender_id) or {}
    sender_name = sender.get("name") or sender_id
    if chat.get("type") == "group":
        sender_name = f"{sender_name} @ {chat.get('groupName')}"
    preview = messages.preview_text(message)

    sent = 0
    for uid in chat.get("participants") or []:
        if uid == sender_id:
            continue
        settings = firestore_service.get_user_chat_settings(chat["id"], uid) or {}
        if settings.get("isMuted"):
            continue
        tokens = firestore_service.get_user_tokens(uid)
        result = run_async(push_service.send_message_push(tokens, chat["id"], message["id"], sender_name, preview))
        if result.success:
            sent += 1
        else:
            logger.info(f"[MESSAGE/PUSH] Not delivered to {uid}: {result.error}")
    return sent


def deliver_message(chat, sender_id, payload):
    """
    Store a message in ``chat`` and fan it out: chat preview, unread counters
    and pushes to participants who have not muted the chat.

    Returns (message, created). Re-sending a client id returns the stored
    message with created False.
    """
    if chat.get("type") == "group" and not groups.can_send_messages(chat, sender_id):
        raise PermissionDenied("only_admins_can_send")
    if chat.get("type") == "individual":
        participants = chat.get("participants") or []
        users = firestore_service.get_users(participants)
        for other_id in participants:
            if other_id != sender_id:
                follows.require_not_blocked(sender_id, users.get(sender_id), other_id, users.get(other_id))

    client_id = payload.get("id")
    if client_id:
        existing = firestore_service.get_document(MESSAGES, client_id)
        if existing:
            same_send = (
                existing.get("chatId") == chat["id"]
                and existing.get("senderId") == sender_id
                and existing.get("type", "text") == (payload.get("type") or "text")
            )
            if not same_send:
                raise InvalidInput("message_id_in_use")
            return existing, False

    now = timezone.now()
    message = messages.build_message(chat["id"], sender_id, payload, now)

    if message["type"] == "poll":
        poll = payload.get("poll") or {}
        message["pollData"] = polls.create_poll(
            poll.get("question"),
            poll.get("options"),
            sender_id,
            now,
            allow_multiple=poll.get("allow_multiple", False),
        )
        message["text"] = message["pollData"]["question"]

    if payload.get("reply_to"):
        parent = firestore_service.get_document(MESSAGES, payload["reply_to"])
        message["replyTo"] = threads.reply_snapshot(parent, chat["id"])
    if payload.get("thread_id"):
        parent = firestore_service.get_document(MESSAGES, payload["thread_id"])
        threads.reply_snapshot(parent, chat["id"])
        message["threadId"] = threads.thread_root_id(parent)

    if not firestore_service.set_document(MESSAGES, message["id"], message):
        return None, False

    if message.get("threadId"):
        root = firestore_service.run_transaction(
            MESSAGES, message["threadId"], lambda current: threads.summary_updates(current, message)
        )
        if root is None:
            logger.warning(f"[MESSAGE/SEND] Thread summary update failed for {message['threadId']}")

    firestore_service.update_document(CHATS, chat["id"], {
        "lastMessage": {
            "text": messages.preview_text(message),
            "senderId": sender_id,
            "type": message["type"],
            "timestamp": now,
        },
        "lastMessageId": message["id"],
        "updatedAt": now,
    })
    others = [uid for uid in chat.get("participants") or [] if uid != sender_id]
    firestore_service.increment_unread(chat["id"], others)

    message["pushSent"] = _push_to_participants(chat, message, sender_id)
    return message, True


@csrf_exempt
def chat_messages(request, chat_id):
    """
    GET lists messages (``limit``, ``before``, ``q``); POST sends one.
    """
    logger.info(f"[MESSAGES] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "GET":
        return _list_messages(request, chat_id)
    if request.method == "POST":
        return _send_message(request, chat_id)
    return HttpResponseNotAllowed(["GET", "POST"])


def _list_messages(request, chat_id):
    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    limit = query_int(request, "limit", DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    filters = [("chatId", "==", chat_id)]
    before = request.GET.get("before")
    if before:
        before_dt = normalize_datetime(before)
        if before_dt is None:
            return JsonResponse({"error": "invalid_before"}, status=400)
        filters.append(("timestamp", "<", before_dt))

    query = request.GET.get("q")
    if query:
        # Search covers the whole history, then the newest matches are paged.
        records = firestore_service.query_documents(MESSAGES, filters, order_by="timestamp")
    else:
        records = firestore_service.query_documents(
            MESSAGES, filters, order_by="timestamp", descending=True, limit=limit
        )
    if records is None:
        return JsonResponse({"error": "failed_to_list_messages"}, status=500)

    if query:
        matches = messages.search(messages.visible_to(records, user_id), query)
        result = matches[-limit:]
        has_more = len(matches) > limit
    else:
        records.reverse()
        result = messages.visible_to(records, user_id)
        has_more = len(records) == limit

    return JsonResponse({
        "messages": result,
        "count": len(result),
        "hasMore": has_more,
    })


def _send_message(request, chat_id):
    data, error = json_body(request)
    if error:
        return error

    logger.info(f"[MESSAGE/SEND] chat={chat_id} type={data.get('type', 'text')}")

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        message, created = deliver_message(chat, user_id, data)
    except MessengerError as exc:
        return error_response(exc)

    if message is None:
        return JsonResponse({"error": "failed_to_send_message"}, status=500)

    return JsonResponse({"success": True, "created": created, "message": message}, status=201 if created else 200)


def _transact_message(message_id, mutate):
    updated = firestore_service.run_transaction(MESSAGES, message_id, mutate)
    if updated is None:
        return JsonResponse({"error": "failed_to_update_message"}, status=500)
    return updated


@csrf_exempt
def message_edit(request, message_id):
    logger.info(f"[MESSAGE/EDIT] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        load_message_for(user_id, message_id)
        updated = _transact_message(
            message_id, lambda current: messages.edit_updates(current, user_id, data.get("text"), now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated
    return JsonResponse({"success": True, "message": updated})


def _delete_one(user_id, message_id, for_everyone):
    message, chat = load_message_for(user_id, message_id)
    if for_everyone:
        is_admin = chat.get("type") == "group" and groups.is_admin(chat, user_id)
        updates = messages.tombstone_updates(message, user_id, is_chat_admin=is_admin)
    else:
        updates = messages.hide_updates(message, user_id)
    if updates and not firestore_service.update_document(MESSAGES, message_id, updates):
        return False
    return True


@csrf_exempt
def message_delete(request, message_id):
    """
    Delete a message for everyone (``for_everyone``) or only for the user.
    """
    logger.info(f"[MESSAGE/DELETE] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    for_everyone = bool(data.get("for_everyone", False))
    try:
        if not _delete_one(user_id, message_id, for_everyone):
            return JsonResponse({"error": "failed_to_delete_message"}, status=500)
    except MessengerError as exc:
        return error_response(exc)

    logger.info(f"[MESSAGE/DELETE] {message_id} deleted by {user_id} (for_everyone={for_everyone})")

    return JsonResponse({"success": True, "messageId": message_id, "forEveryone": for_everyone})


@csrf_exempt
def message_bulk_delete(request):
    logger.info(f"[MESSAGE/BULK_DELETE] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    message_ids = data.get("message_ids")
    if not isinstance(message_ids, list) or not message_ids:
        return JsonResponse({"error": "missing_message_ids"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    for_everyone = bool(data.get("for_everyone", False))
    deleted, failed = [], []
    for message_id in message_ids:
        try:
            if _delete_one(user_id, message_id, for_everyone):
                deleted.append(message_id)
            else:
                failed.append({"messageId": message_id, "error": "write_failed"})
        except MessengerError as exc:
            failed.append({"messageId": message_id, "error": exc.code})

    return JsonResponse({"success": not failed, "deleted": deleted, "failed": failed})


@csrf_exempt
def message_status(request, message_id):
    """
    Advance delivery status. Lower statuses never overwrite higher ones.
    """
    logger.info(f"[MESSAGE/STATUS] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    new_status = data.get("status")
    try:
        message, _ = load_message_for(user_id, message_id)
        if message.get("senderId") == user_id:
            raise PermissionDenied("sender_cannot_ack")
        updated = _transact_message(message_id, lambda current: messages.status_update(current, new_status))
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated
    return JsonResponse({"success": True, "messageId": message_id, "status": updated.get("status")})


@csrf_exempt
def message_reactions(request, message_id):
    """
    Set, replace or (same emoji / no emoji) remove the user's reaction.
    """
    logger.info(f"[MESSAGE/REACT] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    emoji = data.get("emoji")
    try:
        load_message_for(user_id, message_id)
        updated = _transact_message(message_id, lambda current: messages.reaction_updates(current, user_id, emoji))
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated
    return JsonResponse({
        "success": True,
        "messageId": message_id,
        "reactions": updated.get("reactions", {}),
        "summary": messages.reaction_summary(updated.get("reactions")),
    })


@csrf_exempt
def message_star(request, message_id):
    logger.info(f"[MESSAGE/STAR] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    starred = data.get("starred", True)
    if not isinstance(starred, bool):
        return JsonResponse({"error": "invalid_starred"}, status=400)

    try:
        load_message_for(user_id, message_id)
        updated = _transact_message(message_id, lambda current: messages.star_updates(current, user_id, starred))
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated
    return JsonResponse({"success": True, "messageId": message_id, "starred": starred})


@csrf_exempt
def message_starred(request):
    logger.info(f"[MESSAGE/STARRED] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    records = firestore_service.query_documents(MESSAGES, [("starredBy", "array-contains", user_id)])
    if records is None:
        return JsonResponse({"error": "failed_to_list_messages"}, status=500)

    result = [
        m for m in messages.visible_to(records, user_id)
        if not m.get("isDeleted")
    ]
    result.sort(key=lambda m: sort_key_datetime(m.get("timestamp")), reverse=True)
    return JsonResponse({"messages": result, "count": len(result)})


@csrf_exempt
def message_thread(request, message_id):
    """
    Root message plus its thread replies, oldest first.
    """
    logger.info(f"[MESSAGE/THREAD] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        message, _ = load_message_for(user_id, message_id)
    except MessengerError as exc:
        return error_response(exc)

    root_id = threads.thread_root_id(message)
    root = message if root_id == message["id"] else firestore_service.get_document(MESSAGES, root_id)
    if root is None:
        return JsonResponse({"error": "message_not_found"}, status=404)

    replies = firestore_service.query_documents(MESSAGES, [("threadId", "==", root_id)])
    if replies is None:
        return JsonResponse({"error": "failed_to_list_messages"}, status=500)

    thread = messages.visible_to(threads.order_thread(root, replies), user_id)
    return JsonResponse({
        "rootId": root_id,
        "messages": thread,
        "summary": root.get("threadSummary"),
    })


@csrf_exempt
def message_translate(request, message_id):
    logger.info(f"[MESSAGE/TRANSLATE] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    target_language = data.get("target_language")
    if not target_language:
        return JsonResponse({
            "error": "missing_target_language",
            "supported": translation.supported_languages(),
        }, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        message, _ = load_message_for(user_id, message_id)
    except MessengerError as exc:
        return error_response(exc)

    text = message.get("text") or ""
    translated = translation.translate_text(text, target_language)

    return JsonResponse({
        "messageId": message_id,
        "original": text,
        "translated": translated,
        "targetLanguage": target_language,
        "supported": translation.is_language_supported(target_language),
    })


@csrf_exempt
def link_preview_view(request):
    """
    Preview for ``url``, or for the first link found in ``text``.
    """
    logger.info(f"[LINK_PREVIEW] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    url = request.GET.get("url") or link_preview.first_url(request.GET.get("text", ""))
    if not url:
        return JsonResponse({"error": "missing_url"}, status=400)
    if not link_preview.URL_RE.match(url):
        return JsonResponse({"error": "invalid_url"}, status=400)

    try:
        preview = link_preview.fetch_preview(url)
    except MessengerError as exc:
        logger.warning(f"[LINK_PREVIEW] Refused {url} for {user_id}: {exc.code}")
        return error_response(exc)
    if preview is None:
        return JsonResponse({"error": "preview_unavailable", "url": url}, status=502)

    return JsonResponse({"preview": preview})
