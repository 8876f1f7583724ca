import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, groups, music
from ..errors import MessengerError, PermissionDenied
from ..firebase_service import CHATS, MUSIC_SESSIONS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user

logger = logging.getLogger("messenger")


def _session_view(session, now=None):
    view = dict(session)
    view["currentPosition"] = music.current_position(session, now or timezone.now())
    return view


def _active_sessions(chat_id):
    return firestore_service.query_documents(MUSIC_SESSIONS, [
        ("chatId", "==", chat_id),
        ("isActive", "==", True),
    ])


@csrf_exempt
def music_collection(request):
    """
    POST starts a listening session in a chat (ending any running one);
    GET returns the chat's active session.
    """
    logger.info(f"[MUSIC] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "POST":
        return _create_session(request)
    if request.method == "GET":
        return _active_session(request)
    return HttpResponseNotAllowed(["GET", "POST"])


def _create_session(request):
    data, error = json_body(request)
    if error:
        return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    chat_id = data.get("chat_id")
    if not chat_id:
        return JsonResponse({"error": "missing_chat_id"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    now = timezone.now()
    try:
        chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        if chat.get("type") == "group" and not groups.has_music_sharing_permission(chat, user_id):
            raise PermissionDenied("music_sharing_not_allowed")
        session = music.new_session(chat_id, user_id, data.get("music") or {}, now)
    except MessengerError as exc:
        return error_response(exc)

    previous = _active_sessions(chat_id) or []
    firestore_service.batch_update(MUSIC_SESSIONS, {s["id"]: music.end_update(s, now) for s in previous})

    if not firestore_service.set_document(MUSIC_SESSIONS, session["id"], session):
        return JsonResponse({"error": "failed_to_create_session"}, status=500)

    logger.info(f"[MUSIC/CREATE] Session {session['id']} in {chat_id}, ended {len(previous)} previous")

    return JsonResponse({"success": True, "session": _session_view(session, now)}, status=201)


def _active_session(request):
    user_id, error = resolve_user(request)
    if error:
        return error

    chat_id = request.GET.get("chat_id")
    if not chat_id:
        return JsonResponse({"error": "missing_chat_id"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
    except MessengerError as exc:
        return error_response(exc)

    active = _active_sessions(chat_id)
    if active is None:
        return JsonResponse({"error": "failed_to_list_sessions"}, status=500)
    if not active:
        return JsonResponse({"session": None})
    return JsonResponse({"session": _session_view(active[0])})


@csrf_exempt
def music_detail(request, session_id):
    logger.info(f"[MUSIC/DETAIL] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    if not firestore_service.is_available():
        return firestore_unavailable()

    session = firestore_service.get_document(MUSIC_SESSIONS, session_id)
    if not session:
        return JsonResponse({"error": "music_session_not_found"}, status=404)

    return JsonResponse({"session": _session_view(session)})


def _transact_session(request, session_id, tag, build):
    logger.info(f"[MUSIC/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        updated = firestore_service.run_transaction(
            MUSIC_SESSIONS, session_id, lambda session: build(session, user_id, data, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if updated is None:
        if firestore_service.get_document(MUSIC_SESSIONS, session_id) is None:
            return JsonResponse({"error": "music_session_not_found"}, status=404)
        return JsonResponse({"error": "failed_to_update_session"}, status=500)

    return JsonResponse({"success": True, "session": _session_view(updated, now)})


@csrf_exempt
def music_join(request, session_id):
    def build(session, user_id, data, now):
        chats.require_participant(firestore_service.get_document(CHATS, session.get("chatId")), user_id)
        return music.join_update(session, user_id)

    return _transact_session(request, session_id, "JOIN", build)


@csrf_exempt
def music_leave(request, session_id):
    return _transact_session(
        request, session_id, "LEAVE", lambda session, user_id, data, now: music.leave_update(session, user_id, now)
    )


@csrf_exempt
def music_playback(request, session_id):
    """
    Play/pause/seek: ``is_playing`` and ``current_time`` (seconds).
    """
    return _transact_session(
        request,
        session_id,
        "PLAYBACK",
        lambda session, user_id, data, now: music.playback_update(
            session, user_id, data.get("is_playing"), data.get("current_time"), now
        ),
    )


@csrf_exempt
def music_end(request, session_id):
    def build(session, user_id, data, now):
        music.require_active(session)
        if user_id not in (session.get("participants") or []) and session.get("createdBy") != user_id:
            raise PermissionDenied("not_in_session")
        return music.end_update(session, now)

    return _transact_session(request, session_id, "END", build)
