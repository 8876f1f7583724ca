import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, signaling
from ..errors import MessengerError
from ..firebase_service import CALLS, CHATS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user
from ..push_service import push_service
from ..utils import run_async

logger = logging.getLogger("messenger")


def _group_call_view(call, user_id):
    return {
        "callId": call.get("callId"),
        "kind": "group",
        "caller": call.get("caller"),
        "chatId": call.get("chatId"),
        "type": call.get("type"),
        "status": call.get("status"),
        "participants": call.get("participants", []),
        "activeParticipants": signaling.active_members(call),
        "members": call.get("members", {}),
        "signals": signaling.signals_for(call, user_id),
        "createdAt": call.get("createdAt"),
        "endedAt": call.get("endedAt"),
        "durationSec": call.get("durationSec"),
    }


@csrf_exempt
def group_call_create(request):
    """
    Start a group call. With ``chat_id`` the invitees default to the group's
    participants.
    """
    logger.info(f"[CALL/GROUP] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    chat_id = data.get("chat_id")
    participant_ids = data.get("participant_ids") or []
    try:
        if chat_id:
            chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
            if not participant_ids:
                participant_ids = chat.get("participants") or []
        call = signaling.new_group_call(user_id, participant_ids, data.get("call_type", "audio"), timezone.now(),
                                        chat_id=chat_id)
    except MessengerError as exc:
        return error_response(exc)

    call_id = call["callId"]
    if not firestore_service.set_document(CALLS, call_id, call):
        return JsonResponse({"error": "failed_to_create_call_record"}, status=500)

    caller = firestore_service.get_user(user_id) or {}
    caller_name = caller.get("name") or user_id
    pushed = []
    for invitee in call["participants"][1:]:
        result = run_async(push_service.send_incoming_call_push(
            firestore_service.get_user_tokens(invitee),
            call_id=call_id,
            caller_id=user_id,
            caller_name=caller_name,
            call_type=call["type"],
            chat_id=chat_id,
        ))
        if result.success:
            pushed.append(invitee)

    logger.info(f"[CALL/GROUP] Created {call_id}, pushed to {len(pushed)}/{len(call['participants']) - 1}")

    return JsonResponse({"success": True, "call": _group_call_view(call, user_id), "pushedTo": pushed}, status=201)


def _transact_group_call(request, call_id, tag, build):
    logger.info(f"[CALL/GROUP_{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

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

    def mutate(call):
        signaling.require_call(call, user_id)
        return build(call, user_id, data, now)

    try:
        updated = firestore_service.run_transaction(CALLS, call_id, mutate)
        if updated is None:
            signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
            return JsonResponse({"error": "failed_to_update_call"}, status=500)
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({"success": True, "call": _group_call_view(updated, user_id)})


@csrf_exempt
def group_call_join(request, call_id):
    return _transact_group_call(
        request, call_id, "JOIN", lambda call, user_id, data, now: signaling.join_group_update(call, user_id, now)
    )


@csrf_exempt
def group_call_leave(request, call_id):
    """
    Leave the call; the call ends when nobody is left in it.
    """
    return _transact_group_call(
        request, call_id, "LEAVE", lambda call, user_id, data, now: signaling.leave_group_update(call, user_id, now)
    )


@csrf_exempt
def group_call_signal(request, call_id):
    """
    Deliver an offer or answer to one peer (``target_id``, ``kind``, ``description``).
    """
    return _transact_group_call(
        request,
        call_id,
        "SIGNAL",
        lambda call, user_id, data, now: signaling.group_signal_update(
            call, user_id, data.get("target_id"), data.get("kind"), data.get("description")
        ),
    )


@csrf_exempt
def group_call_detail(request, call_id):
    logger.info(f"[CALL/GROUP_DETAIL] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        call = signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({"call": _group_call_view(call, user_id)})
