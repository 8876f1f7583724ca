"""
Group administration: info, settings, membership and roles.

Every change is a read-modify-write of the chat document under a Firestore
transaction, so two admins editing at once cannot lose each other's update.
"""
import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from .. import chats, groups
from ..errors import MessengerError, NotFound
from ..firebase_service import CHATS, USER_SETTINGS, firestore_service
from ..http import error_response, firestore_unavailable, json_body, resolve_user
from .notifications import notify

logger = logging.getLogger("messenger")


def _group_request(request, tag):
    """Common preamble. Returns (data, user_id, None) or (None, None, response)."""
    logger.info(f"[GROUP/{tag}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return None, None, HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return None, None, error

    user_id, error = resolve_user(request, data)
    if error:
        return None, None, error

    if not firestore_service.is_available():
        return None, None, firestore_unavailable()

    return data, user_id, None


def _transact_group(group_id, user_id, build):
    now = timezone.now()

    def mutate(chat):
        chats.require_group(chat)
        chats.require_participant(chat, user_id)
        return build(chat, now)

    updated = firestore_service.run_transaction(CHATS, group_id, mutate)
    if updated is None and firestore_service.get_document(CHATS, group_id) is None:
        raise NotFound("group_not_found")
    return updated


def _group_response(group_id, user_id, updated, **extra):
    if updated is None:
        return JsonResponse({"error": "failed_to_update_group"}, status=500)
    body = {
        "success": True,
        "groupId": group_id,
        "participants": updated.get("participants", []),
        "groupRoles": updated.get("groupRoles", {}),
        "permissions": groups.permissions_for(updated, user_id) if user_id in updated.get("participants", []) else {},
    }
    body.update(extra)
    return JsonResponse(body)


@csrf_exempt
def group_info(request, group_id):
    """
    Update name, description or avatar, subject to the ``editInfo`` policy.
    """
    data, user_id, error = _group_request(request, "INFO")
    if error:
        return error

    changes = {}
    for field, key in (("group_name", "groupName"), ("group_description", "groupDescription"),
                       ("group_avatar", "groupAvatar")):
        if field in data:
            changes[key] = data[field]

    try:
        updated = _transact_group(group_id, user_id, lambda chat, now: groups.info_updates(chat, user_id, changes, now))
    except MessengerError as exc:
        return error_response(exc)

    return _group_response(
        group_id, user_id, updated,
        groupName=updated.get("groupName") if updated else None,
        groupDescription=updated.get("groupDescription") if updated else None,
        groupAvatar=updated.get("groupAvatar") if updated else None,
    )


@csrf_exempt
def group_settings(request, group_id):
    data, user_id, error = _group_request(request, "SETTINGS")
    if error:
        return error

    changes = data.get("settings")
    if not isinstance(changes, dict):
        return JsonResponse({"error": "missing_settings"}, status=400)

    try:
        updated = _transact_group(
            group_id, user_id, lambda chat, now: groups.settings_updates(chat, user_id, changes, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    return _group_response(group_id, user_id, updated,
                           groupSettings=updated.get("groupSettings") if updated else None)


@csrf_exempt
def group_add_participants(request, group_id):
    """
    Add members (``participant_ids``) under the ``addMembers`` policy.
    """
    data, user_id, error = _group_request(request, "ADD")
    if error:
        return error

    new_ids = data.get("participant_ids")
    if not isinstance(new_ids, list) or not new_ids:
        return JsonResponse({"error": "missing_participant_ids"}, status=400)

    added = []

    def build(chat, now):
        updates, ids = groups.add_participants_updates(chat, user_id, new_ids, now)
        added[:] = ids
        return updates

    try:
        updated = _transact_group(group_id, user_id, build)
    except MessengerError as exc:
        return error_response(exc)

    if updated is not None:
        now = timezone.now()
        for member_id in added:
            firestore_service.set_subdocument(CHATS, group_id, USER_SETTINGS, member_id,
                                              chats.default_user_settings(now))
            notify(member_id, user_id, "added_to_group", {"chatId": group_id, "groupName": updated.get("groupName")})
        logger.info(f"[GROUP/ADD] {user_id} added {added} to {group_id}")

    return _group_response(group_id, user_id, updated, added=added)


@csrf_exempt
def group_remove_participant(request, group_id):
    data, user_id, error = _group_request(request, "REMOVE")
    if error:
        return error

    target_id = data.get("target_id")
    if not target_id:
        return JsonResponse({"error": "missing_target_id"}, status=400)

    try:
        updated = _transact_group(
            group_id, user_id, lambda chat, now: groups.remove_participant_updates(chat, user_id, target_id, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    if updated is not None:
        firestore_service.delete_subdocument(CHATS, group_id, USER_SETTINGS, target_id)
        logger.info(f"[GROUP/REMOVE] {user_id} removed {target_id} from {group_id}")

    return _group_response(group_id, user_id, updated, removed=target_id)


@csrf_exempt
def group_set_role(request, group_id):
    data, user_id, error = _group_request(request, "ROLE")
    if error:
        return error

    target_id = data.get("target_id")
    role = data.get("role")
    if not target_id:
        return JsonResponse({"error": "missing_target_id"}, status=400)

    try:
        updated = _transact_group(
            group_id, user_id, lambda chat, now: groups.role_updates(chat, user_id, target_id, role, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    return _group_response(group_id, user_id, updated)


@csrf_exempt
def group_transfer_ownership(request, group_id):
    data, user_id, error = _group_request(request, "TRANSFER")
    if error:
        return error

    target_id = data.get("target_id")
    if not target_id:
        return JsonResponse({"error": "missing_target_id"}, status=400)

    try:
        updated = _transact_group(
            group_id, user_id, lambda chat, now: groups.transfer_ownership_updates(chat, user_id, target_id, now)
        )
    except MessengerError as exc:
        return error_response(exc)

    return _group_response(group_id, user_id, updated)


@csrf_exempt
def group_leave(request, group_id):
    """
    Leave the group. The owner hands over ownership; the last member leaving
    deletes the group.
    """
    data, user_id, error = _group_request(request, "LEAVE")
    if error:
        return error

    outcome = {"last": False}

    def build(chat, now):
        updates = groups.leave_updates(chat, user_id, now)
        outcome["last"] = updates is None
        return updates

    try:
        updated = _transact_group(group_id, user_id, build)
    except MessengerError as exc:
        return error_response(exc)

    if updated is None:
        return JsonResponse({"error": "failed_to_update_group"}, status=500)

    if outcome["last"]:
        firestore_service.delete_document(CHATS, group_id)
        logger.info(f"[GROUP/LEAVE] Last member {user_id} left, group {group_id} deleted")
        return JsonResponse({"success": True, "groupId": group_id, "deleted": True})

    firestore_service.delete_subdocument(CHATS, group_id, USER_SETTINGS, user_id)
    new_owner = next((uid for uid, role in updated.get("groupRoles", {}).items() if role == "owner"), None)
    logger.info(f"[GROUP/LEAVE] {user_id} left {group_id}, owner={new_owner}")

    return JsonResponse({
        "success": True,
        "groupId": group_id,
        "deleted": False,
        "owner": new_owner,
        "participants": updated.get("participants", []),
    })
