"""
Polls embedded in messages (``message["pollData"]``).
"""
from typing import Any, Dict, List

from .constants import MAX_POLL_OPTIONS, MIN_POLL_OPTIONS
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied
from .utils import generate_id, random_suffix


def create_poll(question, options, creator_id: str, now, allow_multiple: bool = False) -> Dict[str, Any]:
    question = question.strip() if isinstance(question, str) else ""
    if not question:
        raise InvalidInput("missing_question")
    if not isinstance(options, list):
        raise InvalidInput("invalid_options")

    cleaned = []
    seen = set()
    for option in options:
        text = option.strip() if isinstance(option, str) else ""
        if not text:
            raise InvalidInput("blank_option")
        if text.lower() in seen:
            raise InvalidInput("duplicate_option", option=text)
        seen.add(text.lower())
        cleaned.append(text)

    if not MIN_POLL_OPTIONS <= len(cleaned) <= MAX_POLL_OPTIONS:
        raise InvalidInput("invalid_option_count", min=MIN_POLL_OPTIONS, max=MAX_POLL_OPTIONS)

    return {
        "id": generate_id("poll", random_suffix()),
        "question": question,
        "options": [
            {"id": f"opt_{index}", "text": text, "votes": []}
            for index, text in enumerate(cleaned)
        ],
        "allowMultipleAnswers": bool(allow_multiple),
        "isClosed": False,
        "createdBy": creator_id,
        "createdAt": now,
    }


def require_poll(message) -> Dict[str, Any]:
    if not message or message.get("type") != "poll" or not message.get("pollData"):
        raise NotFound("poll_not_found")
    return message["pollData"]


def apply_vote(poll: Dict[str, Any], option_id: str, user_id: str) -> Dict[str, Any]:
    """
    Toggle ``user_id``'s vote on ``option_id`` and return the new poll.

    Single-answer polls drop the user's vote from every other option, so a
    user holds at most one vote.
    """
    if poll.get("isClosed"):
        raise Conflict("poll_closed")
    if not any(opt["id"] == option_id for opt in poll.get("options", [])):
        raise InvalidInput("invalid_option", optionId=option_id)

    allow_multiple = poll.get("allowMultipleAnswers", False)
    options = []
    for opt in poll["options"]:
        votes = list(opt.get("votes") or [])
        if opt["id"] == option_id:
            if user_id in votes:
                votes.remove(user_id)
            else:
                votes.append(user_id)
        elif not allow_multiple and user_id in votes:
            votes.remove(user_id)
        options.append({**opt, "votes": votes})

    return {**poll, "options": options}


def close_poll(poll: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    if poll.get("createdBy") != user_id:
        raise PermissionDenied("not_poll_creator")
    if poll.get("isClosed"):
        raise Conflict("poll_closed")
    return {**poll, "isClosed": True, "closedAt": now}


def poll_results(poll: Dict[str, Any]) -> Dict[str, Any]:
    voters = set()
    for opt in poll.get("options", []):
        voters.update(opt.get("votes") or [])
    total = len(voters)

    results: List[Dict[str, Any]] = []
    for opt in poll.get("options", []):
        count = len(opt.get("votes") or [])
        results.append({
            "id": opt["id"],
            "text": opt["text"],
            "count": count,
            "percentage": round(count * 100.0 / total, 1) if total else 0.0,
            "voters": list(opt.get("votes") or []),
        })

    top = max((r["count"] for r in results), default=0)
    return {
        "pollId": poll.get("id"),
        "question": poll.get("question"),
        "totalVoters": total,
        "isClosed": poll.get("isClosed", False),
        "options": results,
        "leading": [r["id"] for r in results if top and r["count"] == top],
    }
