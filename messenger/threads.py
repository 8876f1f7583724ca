"""
Reply-to snapshots and threads.

A reply quotes its parent (``replyTo``). A thread reply also carries
``threadId`` (the root message id), and the root keeps a ``threadSummary``.
"""
from typing import Any, Dict, Iterable, List

from .constants import REPLY_PREVIEW_CHARS
from .errors import Conflict, InvalidInput, NotFound
from .utils import sort_key_datetime


def reply_snapshot(parent: Dict[str, Any], chat_id: str) -> Dict[str, Any]:
    if not parent:
        raise NotFound("reply_target_not_found")
    if parent.get("chatId") != chat_id:
        raise InvalidInput("reply_target_in_other_chat")
    if parent.get("isDeleted"):
        raise Conflict("reply_target_deleted")

    text = parent.get("text") or ""
    if len(text) > REPLY_PREVIEW_CHARS:
        text = text[:REPLY_PREVIEW_CHARS - 1].rstrip() + "…"
    return {
        "id": parent["id"],
        "text": text,
        "senderId": parent.get("senderId"),
        "type": parent.get("type", "text"),
    }


def thread_root_id(parent: Dict[str, Any]) -> str:
    """Replies inside a thread stay in that thread; threads do not nest."""
    return parent.get("threadId") or parent["id"]


def summary_updates(root: Dict[str, Any], reply: Dict[str, Any]) -> Dict[str, Any]:
    summary = dict(root.get("threadSummary") or {})
    participants = list(summary.get("participants") or [])
    if reply["senderId"] not in participants:
        participants.append(reply["senderId"])
    return {
        "threadSummary": {
            "replyCount": summary.get("replyCount", 0) + 1,
            "lastReplyAt": reply["timestamp"],
            "lastReplyBy": reply["senderId"],
            "participants": participants,
        }
    }


def order_thread(root: Dict[str, Any], replies: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ordered = sorted(
        (r for r in replies if r.get("id") != root.get("id")),
        key=lambda m: sort_key_datetime(m.get("timestamp")),
    )
    return [root] + ordered
