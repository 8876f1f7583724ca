import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats
from ..errors import MessengerError
from ..firebase_service import CHATS, GAMES, firestore_service
from ..games import rooms
from ..http import error_response, firestore_unavailable, json_body, resolve_user
from .messages import deliver_message
from .notifications import notify

logger = logging.getLogger("messenger")


@csrf_exempt
def game_collection(request):
    """
    POST creates a room (and announces it in ``chat_id`` when given);
    GET lists the user's games, or a chat's games with ``chat_id``.
    """
    logger.info(f"[GAME] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "POST":
        return _create_game(request)
    if request.method == "GET":
        return _list_games(request)
    return HttpResponseNotAllowed(["GET", "POST"])


def _create_game(request):
    data, error = json_body(request)
    if error:
        return error

    logger.info(f"[GAME/CREATE] Request data: {data}")

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    chat_id = data.get("chat_id")
    try:
        chat = None
        if chat_id:
            chat = chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        game = rooms.create_game(chat_id, user_id, data.get("game_type"), timezone.now())
    except MessengerError as exc:
        return error_response(exc)

    if not firestore_service.set_document(GAMES, game["id"], game):
        return JsonResponse({"error": "failed_to_create_game"}, status=500)

    invite_message = None
    if chat is not None:
        try:
            invite_message, _ = deliver_message(chat, user_id, rooms.invite_message_payload(game))
        except MessengerError as exc:
            logger.warning(f"[GAME/CREATE] Invite message not sent for {game['id']}: {exc.code}")
        for uid in chat.get("participants") or []:
            notify(uid, user_id, "game_invite", {"gameId": game["id"], "gameType": game["type"], "chatId": chat_id})

    logger.info(f"[GAME/CREATE] {game['type']} room {game['id']} by {user_id}")

    return JsonResponse({
        "success": True,
        "game": rooms.public_view(game),
        "inviteMessageId": invite_message["id"] if invite_message else None,
    }, status=201)


def _list_games(request):
    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    chat_id = request.GET.get("chat_id")
    if chat_id:
        try:
            chats.require_participant(firestore_service.get_document(CHATS, chat_id), user_id)
        except MessengerError as exc:
            return error_response(exc)
        filters = [("chatId", "==", chat_id)]
    else:
        filters = [("players", "array-contains", user_id)]

    status = request.GET.get("status")
    if status:
        filters.append(("status", "==", status))

    records = firestore_service.query_documents(GAMES, filters)
    if records is None:
        return JsonResponse({"error": "failed_to_list_games"}, status=500)

    return JsonResponse({"games": [rooms.public_view(g) for g in rooms.sort_recent(records)]})


@csrf_exempt
def game_detail(request, game_id):
    logger.info(f"[GAME/DETAIL] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        game = rooms.require_game(firestore_service.get_document(GAMES, game_id))
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({"game": rooms.public_view(game)})


def _transact_game(request, game_id, tag, build):
    logger.info(f"[GAME/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        updated = firestore_service.run_transaction(GAMES, game_id, lambda game: build(game, user_id, data, now))
        if updated is None:
            rooms.require_game(firestore_service.get_document(GAMES, game_id))
            return JsonResponse({"error": "failed_to_update_game"}, status=500)
    except MessengerError as exc:
        return error_response(exc)

    if updated.get("status") == "finished":
        logger.info(f"[GAME/{tag}] Game {game_id} finished: {updated.get('result')}")

    return JsonResponse({"success": True, "game": rooms.public_view(updated)})


@csrf_exempt
def game_join(request, game_id):
    return _transact_game(
        request, game_id, "JOIN", lambda game, user_id, data, now: rooms.join_updates(game, user_id, now)
    )


@csrf_exempt
def game_start(request, game_id):
    return _transact_game(
        request, game_id, "START", lambda game, user_id, data, now: rooms.start_updates(game, user_id, now)
    )


@csrf_exempt
def game_move(request, game_id):
    """
    Play ``move`` for the requesting user. Dice for ludo and snake are rolled
    here when the move omits ``diceRoll``.
    """
    return _transact_game(
        request, game_id, "MOVE",
        lambda game, user_id, data, now: rooms.move_updates(game, user_id, data.get("move"), now),
    )


@csrf_exempt
def game_resign(request, game_id):
    return _transact_game(
        request, game_id, "RESIGN", lambda game, user_id, data, now: rooms.resign_updates(game, user_id, now)
    )


@csrf_exempt
def game_stats(request):
    logger.info(f"[GAME/STATS] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    user_id, error = resolve_user(request)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    records = firestore_service.query_documents(GAMES, [("players", "array-contains", user_id)])
    if records is None:
        return JsonResponse({"error": "failed_to_list_games"}, status=500)

    return JsonResponse({"userId": user_id, "stats": rooms.player_stats(records, user_id)})
