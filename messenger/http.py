import json
import logging
from typing import Optional, Tuple

from django.conf import settings
from django.http import JsonResponse

from .errors import MessengerError

logger = logging.getLogger("messenger")


def json_body(request) -> Tuple[dict, JsonResponse]:
    try:
        body = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data, None
    except (json.JSONDecodeError, ValueError) as exc:
        return None, JsonResponse({"error": f"invalid_json: {exc}"}, status=400)


def error_response(exc: MessengerError) -> JsonResponse:
    return JsonResponse(exc.to_dict(), status=exc.status)


def firestore_unavailable() -> JsonResponse:
    return JsonResponse({
        "error": "firestore_unavailable",
        "message": "Firebase Firestore is not configured",
    }, status=503)


def _bearer_token(request) -> Optional[str]:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def resolve_user(request, data: Optional[dict] = None) -> Tuple[Optional[str], Optional[JsonResponse]]:
    """
    Work out who is making the request.

    With MESSENGER_REQUIRE_AUTH on, the Firebase ID token in the
    Authorization header is verified and its uid returned. Otherwise the
    caller identifies itself with ``user_id`` in the body or query string.
    """
    if settings.MESSENGER_REQUIRE_AUTH:
        token = _bearer_token(request)
        if not token:
            return None, JsonResponse({"error": "missing_auth_token"}, status=401)
        try:
            from firebase_admin import auth
            from .firebase_service import get_firebase_app

            decoded = auth.verify_id_token(token, app=get_firebase_app())
            return decoded["uid"], None
        except Exception as e:
            logger.warning(f"[AUTH] Token verification failed: {e}")
            return None, JsonResponse({"error": "invalid_auth_token"}, status=401)

    user_id = None
    if data:
        user_id = data.get("user_id")
    if not user_id:
        user_id = request.GET.get("user_id")
    if not user_id:
        return None, JsonResponse({"error": "missing_user_id"}, status=400)
    return str(user_id), None


def query_int(request, key: str, default: int, maximum: Optional[int] = None) -> int:
    try:
        value = int(request.GET.get(key, default))
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    if maximum is not None:
        return min(value, maximum)
    return value
