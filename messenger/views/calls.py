import logging
import threading
from datetime import timedelta

from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import follows, signaling
from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, MISSED_TIMEOUT_SECONDS
from ..errors import MessengerError, PermissionDenied
from ..firebase_service import CALLS, CANDIDATES, firestore_service
from ..http import error_response, firestore_unavailable, json_body, query_int, resolve_user
from ..push_service import push_service
from ..utils import clamp_expire, format_timestamp, now_millis, run_async
from .notifications import notify

logger = logging.getLogger("messenger")

_missed_timers = {}
_missed_timers_lock = threading.Lock()


def _mark_missed(call_id: str) -> bool:
    """Move a still-ringing call to missed and tell the callee. True if it changed."""
    changed = {"missed": False}

    def mutate(call):
        if call.get("status") != "ringing":
            return None
        changed["missed"] = True
        return signaling.transition(call, "missed", timezone.now())

    call = firestore_service.run_transaction(CALLS, call_id, mutate)
    if call and changed["missed"]:
        notify(call["callee"], call["caller"], "missed_call", {"callId": call_id, "callType": call.get("type")})
    return changed["missed"]


def sweep_missed_calls(timeout_seconds: int) -> int:
    """Mark every call ringing longer than ``timeout_seconds`` as missed. Returns how many changed."""
    cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
    expired = firestore_service.expired_ringing_calls(cutoff)
    return sum(1 for call in expired if _mark_missed(call["id"]))


def _schedule_missed_timeout(call_id: str, timeout_seconds: int = MISSED_TIMEOUT_SECONDS) -> None:
    def _timeout_handler():
        try:
            if _mark_missed(call_id):
                logger.info(f"[CALL/TIMEOUT] Call {call_id} missed after {timeout_seconds}s")
        finally:
            with _missed_timers_lock:
                _missed_timers.pop(call_id, None)

    with _missed_timers_lock:
        existing = _missed_timers.get(call_id)
        if existing:
            existing.cancel()
        timer = threading.Timer(timeout_seconds, _timeout_handler)
        timer.daemon = True
        _missed_timers[call_id] = timer
        timer.start()


def _cancel_missed_timeout(call_id: str) -> None:
    with _missed_timers_lock:
        timer = _missed_timers.pop(call_id, None)
        if timer:
            timer.cancel()


def _call_request(request, tag):
    logger.info(f"[CALL/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return None, None, HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return None, None, error

    logger.info(f"[CALL/{tag}] Request data: {data}")

    user_id, error = resolve_user(request, data)
    if error:
        return None, None, error

    if not data.get("call_id") and tag != "INVITE":
        return None, None, JsonResponse({"error": "missing_call_id"}, status=400)

    if not firestore_service.is_available():
        return None, None, firestore_unavailable()

    return data, user_id, None


def _transact_call(call_id, user_id, build):
    def mutate(call):
        signaling.require_call(call, user_id)
        return build(call)

    updated = firestore_service.run_transaction(CALLS, call_id, mutate)
    if updated is None:
        signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
        return JsonResponse({"error": "failed_to_update_call"}, status=500)
    return updated


@csrf_exempt
def call_invite(request):
    """
    Start a 1:1 call: create the ringing call record, arm the missed-call
    timer and push an incoming-call notification to the callee.
    """
    data, caller_id, error = _call_request(request, "INVITE")
    if error:
        return error

    callee_id = data.get("callee_id")
    caller = firestore_service.get_user(caller_id) or {}
    try:
        call = signaling.new_call(caller_id, callee_id, data.get("call_type", "audio"), timezone.now(),
                                  chat_id=data.get("chat_id"))
        follows.require_not_blocked(caller_id, caller, callee_id, firestore_service.get_user(callee_id))
    except MessengerError as exc:
        return error_response(exc)

    call_id = call["callId"]
    if not firestore_service.set_document(CALLS, call_id, call):
        return JsonResponse({"error": "failed_to_create_call_record"}, status=500)

    logger.info(f"[CALL/INVITE] Created call record: {call_id}")

    _schedule_missed_timeout(call_id, MISSED_TIMEOUT_SECONDS)

    caller_name = data.get("caller_name") or caller.get("name") or caller_id
    user_tokens = firestore_service.get_user_tokens(callee_id)

    result = run_async(push_service.send_incoming_call_push(
        user_tokens,
        call_id=call_id,
        caller_id=caller_id,
        caller_name=caller_name,
        call_type=call["type"],
        chat_id=call.get("chatId"),
    ))

    response_data = {
        "success": True,
        "callId": call_id,
        "status": call["status"],
        "pushSent": result.success,
    }

    if result.success:
        firestore_service.update_document(CALLS, call_id, {"pushSent": True})
        response_data["pushPlatform"] = result.platform
    else:
        response_data["pushError"] = result.error_code or result.error
        logger.warning(f"[CALL/INVITE] Push failed: {result.error}")

    return JsonResponse(response_data, status=201)


@csrf_exempt
def call_offer(request):
    data, user_id, error = _call_request(request, "OFFER")
    if error:
        return error

    call_id = data["call_id"]
    try:
        updated = _transact_call(call_id, user_id, lambda call: signaling.offer_update(call, user_id, data.get("offer")))
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated
    return JsonResponse({"success": True, "callId": call_id, "status": updated.get("status")})


@csrf_exempt
def call_answer(request):
    """
    Callee accepts with an SDP answer; the call becomes accepted.
    """
    data, user_id, error = _call_request(request, "ANSWER")
    if error:
        return error

    call_id = data["call_id"]
    now = timezone.now()
    try:
        updated = _transact_call(
            call_id, user_id, lambda call: signaling.answer_update(call, user_id, data.get("answer"), now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if isinstance(updated, JsonResponse):
        return updated

    _cancel_missed_timeout(call_id)
    logger.info(f"[CALL/ANSWER] Call {call_id} accepted")

    return JsonResponse({
        "success": True,
        "callId": call_id,
        "status": updated.get("status"),
        "offer": updated.get("offer"),
    })


def _terminate(request, tag, new_status, allowed_role=None):
    data, user_id, error = _call_request(request, tag)
    if error:
        return error, None, None

    call_id = data["call_id"]
    now = timezone.now()

    def build(call):
        if allowed_role and signaling.role_in_call(call, user_id) != allowed_role:
            raise PermissionDenied(f"only_{allowed_role}_allowed", requested=new_status)
        return signaling.transition(call, new_status, now)

    try:
        updated = _transact_call(call_id, user_id, build)
    except MessengerError as exc:
        return error_response(exc), None, None

    if isinstance(updated, JsonResponse):
        return updated, None, None

    _cancel_missed_timeout(call_id)
    logger.info(f"[CALL/{tag}] Call {call_id} {new_status}")
    return None, updated, user_id


@csrf_exempt
def call_reject(request):
    error, call, _ = _terminate(request, "REJECT", "rejected", allowed_role="callee")
    if error:
        return error
    return JsonResponse({"success": True, "callId": call["callId"], "status": "rejected"})


@csrf_exempt
def call_cancel(request):
    """
    Caller hangs up before answer; the callee's device is told to stop ringing.
    """
    error, call, _ = _terminate(request, "CANCEL", "cancelled", allowed_role="caller")
    if error:
        return error

    user_tokens = firestore_service.get_user_tokens(call["callee"])
    if user_tokens and user_tokens.get("exists"):
        run_async(push_service.send_call_cancelled_push(user_tokens, call["callId"]))

    return JsonResponse({"success": True, "callId": call["callId"], "status": "cancelled"})


@csrf_exempt
def call_missed(request):
    """
    Mark a call as missed (client timeout).
    """
    error, call, _ = _terminate(request, "MISSED", "missed")
    if error:
        return error

    notify(call["callee"], call["caller"], "missed_call", {"callId": call["callId"], "callType": call.get("type")})
    return JsonResponse({"success": True, "callId": call["callId"], "status": "missed"})


@csrf_exempt
def call_end(request):
    """
    End an active call.
    """
    error, call, _ = _terminate(request, "END", "ended")
    if error:
        return error

    logger.info(f"[CALL/END] Call {call['callId']} ended, duration={call.get('durationSec')}s")
    return JsonResponse({
        "success": True,
        "callId": call["callId"],
        "status": "ended",
        "durationSeconds": call.get("durationSec"),
    })


@csrf_exempt
def call_timeout_sweep(request):
    """
    Sweep ringing calls and mark as missed if expired.
    """
    logger.info(f"[CALL/TIMEOUT_SWEEP] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    timeout_seconds = data.get("timeout_seconds", MISSED_TIMEOUT_SECONDS)
    try:
        timeout_seconds = int(timeout_seconds)
    except (TypeError, ValueError):
        return JsonResponse({"error": "invalid_timeout_seconds"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    updated_count = sweep_missed_calls(timeout_seconds)
    logger.info(f"[CALL/TIMEOUT_SWEEP] Marked {updated_count} call(s) as missed")

    return JsonResponse({
        "success": True,
        "timeoutSeconds": timeout_seconds,
        "updatedCount": updated_count,
    })


@csrf_exempt
def call_ice(request):
    """
    Store one ICE candidate from the requesting side of the call.
    """
    data, user_id, error = _call_request(request, "ICE")
    if error:
        return error

    call_id = data["call_id"]
    try:
        call = signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
        candidate = signaling.ice_candidate(call, user_id, data.get("candidate"), now_millis(),
                                            target=data.get("target_id"))
    except MessengerError as exc:
        return error_response(exc)

    candidate_id = firestore_service.add_subdocument(CALLS, call_id, CANDIDATES, candidate)
    if not candidate_id:
        return JsonResponse({"error": "failed_to_store_candidate"}, status=500)

    return JsonResponse({"success": True, "callId": call_id, "candidateId": candidate_id}, status=201)


@csrf_exempt
def call_ice_list(request, call_id):
    """
    Candidates addressed to the requesting user, newer than ``since`` (ms).
    """
    logger.info(f"[CALL/ICE_LIST] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        since = int(request.GET.get("since", 0))
    except (TypeError, ValueError):
        return JsonResponse({"error": "invalid_since"}, status=400)

    try:
        signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    candidates = firestore_service.list_subdocuments(CALLS, call_id, CANDIDATES)
    if candidates is None:
        return JsonResponse({"error": "failed_to_list_candidates"}, status=500)

    result = signaling.candidates_for(candidates, user_id, since)
    return JsonResponse({
        "callId": call_id,
        "candidates": result,
        "latest": result[-1]["timestamp"] if result else since,
    })


@csrf_exempt
def call_status(request, call_id):
    """
    Get call status from Firestore.
    """
    logger.info(f"[CALL/STATUS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        call_record = signaling.require_call(firestore_service.get_document(CALLS, call_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({
        "callId": call_record.get("callId"),
        "kind": call_record.get("kind"),
        "caller": call_record.get("caller"),
        "callee": call_record.get("callee"),
        "participants": call_record.get("participants"),
        "chatId": call_record.get("chatId"),
        "type": call_record.get("type"),
        "status": call_record.get("status"),
        "offer": call_record.get("offer"),
        "answer": call_record.get("answer"),
        "createdAt": format_timestamp(call_record.get("createdAt")),
        "answeredAt": format_timestamp(call_record.get("answeredAt")),
        "endedAt": format_timestamp(call_record.get("endedAt")),
        "durationSec": call_record.get("durationSec"),
        "pushSent": call_record.get("pushSent"),
    })


@csrf_exempt
def call_history(request):
    logger.info(f"[CALL/HISTORY] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    limit = query_int(request, "limit", DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    records = firestore_service.query_documents(
        CALLS,
        [("participants", "array-contains", user_id)],
        order_by="createdAt",
        descending=True,
        limit=limit,
    )
    if records is None:
        return JsonResponse({"error": "failed_to_list_calls"}, status=500)

    return JsonResponse({"calls": [signaling.history_entry(call, user_id) for call in records]})


@csrf_exempt
def call_ice_servers(request):
    """
    STUN/TURN configuration for RTCPeerConnection. TURN credentials are
    short-lived and only issued when MESSENGER_TURN_SECRET is set.
    """
    logger.info(f"[CALL/ICE_SERVERS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    ttl = clamp_expire(request.GET.get("ttl"))
    credentials = None
    if settings.MESSENGER_TURN_SECRET and settings.MESSENGER_TURN_URLS:
        credentials = signaling.turn_credentials(settings.MESSENGER_TURN_SECRET, user_id, ttl)

    return JsonResponse({
        "iceServers": signaling.ice_servers(settings.MESSENGER_STUN_URLS, settings.MESSENGER_TURN_URLS, credentials),
        "ttl": ttl,
        "expiresAt": credentials["expiresAt"] if credentials else None,
    })
