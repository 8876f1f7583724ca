import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, groups, invite_links
from ..constants import INVITE_LINK_EXPIRY_HOURS
from ..errors import MessengerError, PermissionDenied
from ..firebase_service import CHATS, INVITE_LINKS, USER_SETTINGS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user

logger = logging.getLogger("messenger")


def _active_links(group_id):
    return firestore_service.query_documents(INVITE_LINKS, [
        ("groupId", "==", group_id),
        ("isActive", "==", True),
    ])


def _create_link(group_id, user_id, data):
    link = invite_links.new_link(
        group_id,
        user_id,
        timezone.now(),
        expiry_hours=data.get("expiry_hours", INVITE_LINK_EXPIRY_HOURS),
        max_uses=data.get("max_uses"),
    )
    if not firestore_service.set_document(INVITE_LINKS, link["linkId"], link):
        return None
    return link


def _load_group_for_links(group_id, user_id):
    chat = chats.require_participant(chats.require_group(firestore_service.get_document(CHATS, group_id)), user_id)
    if not groups.can_add_members(chat, user_id):
        raise PermissionDenied("cannot_manage_invite_links")
    return chat


@csrf_exempt
def group_invite_link(request, group_id):
    """
    GET returns the group's active link (404 if none); POST generates one.
    """
    logger.info(f"[INVITE/LINK] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method not in ("GET", "POST"):
        return HttpResponseNotAllowed(["GET", "POST"])

    data = {}
    if request.method == "POST":
        data, error = json_body(request)
        if error:
            return error

    user_id, error = resolve_user(request, data)
    if error:
        return error

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        _load_group_for_links(group_id, user_id)
        if request.method == "GET":
            now = timezone.now()
            active = [
                link for link in (_active_links(group_id) or [])
                if not invite_links.is_expired(link, now)
            ]
            if not active:
                return JsonResponse({"error": "no_active_link"}, status=404)
            return JsonResponse({"link": invite_links.public_view(active[0])})

        link = _create_link(group_id, user_id, data)
    except MessengerError as exc:
        return error_response(exc)

    if link is None:
        return JsonResponse({"error": "failed_to_create_link"}, status=500)

    logger.info(f"[INVITE/LINK] Created {link['linkId']} for group {group_id}")

    return JsonResponse({"success": True, "link": invite_links.public_view(link)}, status=201)


@csrf_exempt
def group_invite_link_reset(request, group_id):
    """
    Revoke every active link for the group and issue a fresh one.
    """
    logger.info(f"[INVITE/RESET] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        _load_group_for_links(group_id, user_id)
        active = _active_links(group_id) or []
        revoked = firestore_service.batch_update(INVITE_LINKS, {
            link["id"]: {"isActive": False, "revokedAt": timezone.now()} for link in active
        })
        link = _create_link(group_id, user_id, data)
    except MessengerError as exc:
        return error_response(exc)

    if link is None:
        return JsonResponse({"error": "failed_to_create_link"}, status=500)

    return JsonResponse({"success": True, "revokedCount": revoked, "link": invite_links.public_view(link)})


@csrf_exempt
def invite_detail(request, link_id):
    """
    Public preview of an invite: group name, avatar and member count.
    """
    logger.info(f"[INVITE/DETAIL] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    if not firestore_service.is_available():
        return firestore_unavailable()

    link = firestore_service.get_document(INVITE_LINKS, link_id)
    try:
        group_id = invite_links.validate(link, timezone.now())
        chat = chats.require_group(firestore_service.get_document(CHATS, group_id))
    except MessengerError as exc:
        return error_response(exc)

    return JsonResponse({
        "link": invite_links.public_view(link),
        "group": {
            "id": group_id,
            "groupName": chat.get("groupName"),
            "groupAvatar": chat.get("groupAvatar"),
            "groupDescription": chat.get("groupDescription"),
            "memberCount": len(chat.get("participants") or []),
        },
    })


@csrf_exempt
def invite_join(request, link_id):
    """
    Join a group through an invite link. Existing members get a success
    response without consuming a use.
    """
    logger.info(f"[INVITE/JOIN] {request.method} from {request.META.get('REMOTE_ADDR')}")

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
        group_id = invite_links.validate(firestore_service.get_document(INVITE_LINKS, link_id), now)
        chat = chats.require_group(firestore_service.get_document(CHATS, group_id))
        if user_id in (chat.get("participants") or []):
            return JsonResponse({"success": True, "groupId": group_id, "alreadyMember": True})

        link = firestore_service.run_transaction(
            INVITE_LINKS, link_id, lambda current: invite_links.usage_update(current, now)
        )
        if link is None:
            return JsonResponse({"error": "failed_to_use_link"}, status=500)

        updated = firestore_service.run_transaction(
            CHATS, group_id, lambda current: groups.join_updates(current, user_id, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if updated is None:
        return JsonResponse({"error": "failed_to_join_group"}, status=500)

    firestore_service.set_subdocument(CHATS, group_id, USER_SETTINGS, user_id, chats.default_user_settings(now))
    logger.info(f"[INVITE/JOIN] {user_id} joined {group_id} via {link_id}")

    return JsonResponse({
        "success": True,
        "groupId": group_id,
        "alreadyMember": False,
        "participants": updated.get("participants", []),
    })
