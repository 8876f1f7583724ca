"""
Call signaling records: 1:1 and group call lifecycles, SDP/ICE payloads,
call history and TURN credentials.

Status machine for a 1:1 call:

    ringing -> accepted | rejected | cancelled | missed
    accepted -> ended

Group calls are ``active`` until the last participant leaves (``ended``).
"""
import base64
import hashlib
import hmac
import time
from typing import Any, Dict, Iterable, List, Optional

from .constants import CALL_TYPES
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied
from .utils import generate_id, normalize_datetime, random_suffix

TRANSITIONS = {
    "ringing": {"accepted", "rejected", "cancelled", "missed"},
    "accepted": {"ended"},
}
TERMINAL_STATUSES = {"rejected", "cancelled", "missed", "ended"}


def new_call(caller_id: str, callee_id: str, call_type: str, now, chat_id: Optional[str] = None) -> Dict[str, Any]:
    if call_type not in CALL_TYPES:
        raise InvalidInput("invalid_call_type", valid=list(CALL_TYPES))
    if not callee_id:
        raise InvalidInput("missing_callee_id")
    if caller_id == callee_id:
        raise InvalidInput("cannot_call_self")

    return {
        "callId": generate_id("call", caller_id, random_suffix(4)),
        "kind": "direct",
        "caller": caller_id,
        "callee": callee_id,
        "participants": [caller_id, callee_id],
        "chatId": chat_id,
        "type": call_type,
        "status": "ringing",
        "offer": None,
        "answer": None,
        "createdAt": now,
        "answeredAt": None,
        "endedAt": None,
        "durationSec": None,
        "pushSent": False,
    }


def require_call(call: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
    if not call:
        raise NotFound("call_not_found")
    if user_id not in (call.get("participants") or []):
        raise PermissionDenied("not_a_call_participant")
    return call


def role_in_call(call: Dict[str, Any], user_id: str) -> str:
    if call.get("caller") == user_id:
        return "caller"
    if call.get("callee") == user_id:
        return "callee"
    return user_id


def transition(call: Dict[str, Any], new_status: str, now) -> Dict[str, Any]:
    current = call.get("status")
    if new_status not in TRANSITIONS.get(current, set()):
        raise Conflict("invalid_call_transition", currentStatus=current, requested=new_status)

    updates = {"status": new_status}
    if new_status == "accepted":
        updates["answeredAt"] = now
    if new_status in TERMINAL_STATUSES:
        updates["endedAt"] = now
    if new_status == "ended":
        updates["durationSec"] = call_duration(call, now)
    return updates


def call_duration(call: Dict[str, Any], ended_at) -> int:
    base = normalize_datetime(call.get("answeredAt")) or normalize_datetime(call.get("createdAt"))
    if not base:
        return 0
    return max(0, int((ended_at - base).total_seconds()))


def session_description(payload: Any, expected_type: str) -> Dict[str, str]:
    if not isinstance(payload, dict) or not payload.get("sdp"):
        raise InvalidInput(f"missing_{expected_type}")
    sdp_type = payload.get("type") or expected_type
    if sdp_type != expected_type:
        raise InvalidInput("invalid_sdp_type", expected=expected_type)
    return {"type": sdp_type, "sdp": payload["sdp"]}


def offer_update(call: Dict[str, Any], user_id: str, offer: Any) -> Dict[str, Any]:
    if call.get("caller") != user_id:
        raise PermissionDenied("only_caller_sends_offer")
    if call.get("status") != "ringing":
        raise Conflict("call_not_ringing", currentStatus=call.get("status"))
    return {"offer": session_description(offer, "offer")}


def answer_update(call: Dict[str, Any], user_id: str, answer: Any, now) -> Dict[str, Any]:
    if call.get("callee") != user_id:
        raise PermissionDenied("only_callee_sends_answer")
    updates = transition(call, "accepted", now)
    updates["answer"] = session_description(answer, "answer")
    return updates


def ice_candidate(call: Dict[str, Any], user_id: str, payload: Any, now_ms: int,
                  target: Optional[str] = None) -> Dict[str, Any]:
    if call.get("status") in TERMINAL_STATUSES:
        raise Conflict("call_finished", currentStatus=call.get("status"))
    if not isinstance(payload, dict) or not payload.get("candidate"):
        raise InvalidInput("missing_candidate")
    candidate = {
        "candidate": payload["candidate"],
        "sdpMid": payload.get("sdpMid"),
        "sdpMLineIndex": payload.get("sdpMLineIndex"),
        "role": role_in_call(call, user_id),
        "from": user_id,
        "timestamp": now_ms,
    }
    if target:
        candidate["to"] = target
    return candidate


def candidates_for(candidates: Iterable[Dict[str, Any]], user_id: str, since: int = 0) -> List[Dict[str, Any]]:
    """Candidates the other side(s) sent to ``user_id``, oldest first."""
    result = [
        c for c in candidates
        if c.get("from") != user_id
        and c.get("to") in (None, user_id)
        and c.get("timestamp", 0) > since
    ]
    return sorted(result, key=lambda c: c.get("timestamp", 0))


def history_entry(call: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    if call.get("kind") == "group":
        direction = "outgoing" if call.get("caller") == user_id else "incoming"
    elif call.get("caller") == user_id:
        direction = "outgoing"
    elif call.get("status") in ("missed", "cancelled"):
        direction = "missed"
    else:
        direction = "incoming"
    return {
        "callId": call.get("callId") or call.get("id"),
        "kind": call.get("kind", "direct"),
        "type": call.get("type"),
        "status": call.get("status"),
        "direction": direction,
        "peer": call.get("callee") if call.get("caller") == user_id else call.get("caller"),
        "participants": call.get("participants") or [],
        "createdAt": call.get("createdAt"),
        "durationSec": call.get("durationSec"),
    }


# =========================================================================
# Group calls
# =========================================================================

def new_group_call(caller_id: str, participant_ids: Iterable[str], call_type: str, now,
                   chat_id: Optional[str] = None) -> Dict[str, Any]:
    if call_type not in CALL_TYPES:
        raise InvalidInput("invalid_call_type", valid=list(CALL_TYPES))
    invited = [p for p in dict.fromkeys(participant_ids or []) if p and p != caller_id]
    if not invited:
        raise InvalidInput("missing_participants")

    return {
        "callId": generate_id("groupcall", caller_id),
        "kind": "group",
        "caller": caller_id,
        "participants": [caller_id] + invited,
        "chatId": chat_id,
        "type": call_type,
        "status": "active",
        "members": {
            caller_id: {"active": True, "joinedAt": now, "leftAt": None},
        },
        "signals": {},
        "createdAt": now,
        "endedAt": None,
        "durationSec": None,
    }


def active_members(call: Dict[str, Any]) -> List[str]:
    return [uid for uid, state in (call.get("members") or {}).items() if state.get("active")]


def join_group_update(call: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    if call.get("status") != "active":
        raise Conflict("call_not_active", currentStatus=call.get("status"))
    members = dict(call.get("members") or {})
    members[user_id] = {"active": True, "joinedAt": now, "leftAt": None}
    return {"members": members}


def leave_group_update(call: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    members = dict(call.get("members") or {})
    state = members.get(user_id)
    if not state or not state.get("active"):
        raise Conflict("not_in_call")
    members[user_id] = {**state, "active": False, "leftAt": now}

    updates = {"members": members}
    if not any(s.get("active") for s in members.values()):
        updates["status"] = "ended"
        updates["endedAt"] = now
        updates["durationSec"] = call_duration(call, now)
    return updates


def group_signal_update(call: Dict[str, Any], user_id: str, target_id: str, kind: str, payload: Any) -> Dict[str, Any]:
    """Store an offer or answer for one peer pair under ``signals["<from>_<to>"]``."""
    if call.get("status") != "active":
        raise Conflict("call_not_active", currentStatus=call.get("status"))
    if kind not in ("offer", "answer"):
        raise InvalidInput("invalid_signal_kind", valid=["offer", "answer"])
    if target_id not in (call.get("participants") or []) or target_id == user_id:
        raise InvalidInput("invalid_target")
    signals = dict(call.get("signals") or {})
    signals[f"{user_id}_{target_id}"] = {"kind": kind, **session_description(payload, kind)}
    return {"signals": signals}


def signals_for(call: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    suffix = f"_{user_id}"
    return {
        key[: -len(suffix)]: value
        for key, value in (call.get("signals") or {}).items()
        if key.endswith(suffix)
    }


# =========================================================================
# ICE servers
# =========================================================================

def turn_credentials(secret: str, user_id: str, ttl_seconds: int, now_ts: Optional[int] = None) -> Dict[str, Any]:
    """
    Time-limited TURN credentials (the TURN REST API scheme coturn uses
    with ``use-auth-secret``).
    """
    expires = int(now_ts if now_ts is not None else time.time()) + ttl_seconds
    username = f"{expires}:{user_id}"
    digest = hmac.new(secret.encode("utf-8"), username.encode("utf-8"), hashlib.sha1).digest()
    return {
        "username": username,
        "credential": base64.b64encode(digest).decode("ascii"),
        "expiresAt": expires,
    }


def ice_servers(stun_urls: List[str], turn_urls: List[str], credentials: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    servers = []
    if stun_urls:
        servers.append({"urls": stun_urls})
    if turn_urls and credentials:
        servers.append({
            "urls": turn_urls,
            "username": credentials["username"],
            "credential": credentials["credential"],
        })
    return servers
