import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, polls
from ..errors import MessengerError
from ..firebase_service import CHATS, MESSAGES, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user
from .messages import deliver_message, load_message_for

logger = logging.getLogger("messenger")


@csrf_exempt
def poll_create(request, chat_id):
    """
    Send a poll message: ``question``, ``options`` and ``allow_multiple``.
    """
    logger.info(f"[POLL/CREATE] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    payload = {
        "type": "poll",
        "id": data.get("id"),
        "poll": {
            "question": data.get("question"),
            "options": data.get("options"),
            "allow_multiple": bool(data.get("allow_multiple", False)),
        },
    }
    try:
        chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        message, created = deliver_message(chat, user_id, payload)
    except MessengerError as exc:
        return error_response(exc)

    if message is None:
        return JsonResponse({"error": "failed_to_send_message"}, status=500)

    return JsonResponse({
        "success": True,
        "created": created,
        "message": message,
        "results": polls.poll_results(message["pollData"]),
    }, status=201 if created else 200)


def _update_poll(request, message_id, tag, change):
    logger.info(f"[POLL/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    def mutate(current):
        poll = polls.require_poll(current)
        return {"pollData": change(poll, user_id, data)}

    try:
        load_message_for(user_id, message_id)
        updated = firestore_service.run_transaction(MESSAGES, message_id, mutate)
    except MessengerError as exc:
        return error_response(exc)

    if updated is None:
        return JsonResponse({"error": "failed_to_update_poll"}, status=500)

    return JsonResponse({"success": True, "results": polls.poll_results(updated["pollData"])})


@csrf_exempt
def poll_vote(request, message_id):
    """
    Toggle the user's vote on ``option_id``. Runs in a transaction so
    concurrent voters do not overwrite each other.
    """
    return _update_poll(
        request, message_id, "VOTE", lambda poll, user_id, data: polls.apply_vote(poll, data.get("option_id"), user_id)
    )


@csrf_exempt
def poll_close(request, message_id):
    return _update_poll(
        request, message_id, "CLOSE", lambda poll, user_id, data: polls.close_poll(poll, user_id, timezone.now())
    )


@csrf_exempt
def poll_detail(request, message_id):
    logger.info(f"[POLL/RESULTS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        message, _ = load_message_for(user_id, message_id)
        poll = polls.require_poll(message)
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({"messageId": message_id, "results": polls.poll_results(poll)})
