"""
Shared music listening sessions with synchronised playback.

The stored ``currentTime`` is the position at ``updatedAt``; while playing,
clients derive the live position with ``current_position``.
"""
import re
from typing import Any, Dict, Optional

from .constants import MUSIC_TYPES
from .errors import Conflict, InvalidInput, NotFound, PermissionDenied
from .utils import generate_id, normalize_datetime

_YOUTUBE_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
)


def extract_youtube_id(url: str) -> Optional[str]:
    for pattern in _YOUTUBE_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def new_session(chat_id: str, user_id: str, music: Dict[str, Any], now) -> Dict[str, Any]:
    music_type = music.get("type")
    if music_type not in MUSIC_TYPES:
        raise InvalidInput("invalid_music_type", valid=list(MUSIC_TYPES))
    url = music.get("url")
    if not url:
        raise InvalidInput("missing_music_url")

    youtube_id = None
    if music_type == "youtube":
        youtube_id = music.get("youtubeId") or extract_youtube_id(url)
        if not youtube_id:
            raise InvalidInput("invalid_youtube_url")

    return {
        "id": generate_id("music", chat_id),
        "chatId": chat_id,
        "createdBy": user_id,
        "createdAt": now,
        "musicType": music_type,
        "musicUrl": url,
        "musicTitle": music.get("title") or "Unknown",
        "musicDuration": music.get("duration") or 0,
        "thumbnailUrl": music.get("thumbnail"),
        "youtubeId": youtube_id,
        "isPlaying": False,
        "currentTime": 0,
        "updatedAt": now,
        "participants": [user_id],
        "isActive": True,
    }


def require_active(session: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not session:
        raise NotFound("music_session_not_found")
    if not session.get("isActive"):
        raise Conflict("music_session_ended")
    return session


def current_position(session: Dict[str, Any], now) -> float:
    position = float(session.get("currentTime") or 0)
    if session.get("isPlaying"):
        updated_at = normalize_datetime(session.get("updatedAt"))
        if updated_at:
            position += max(0.0, (now - updated_at).total_seconds())
    duration = session.get("musicDuration") or 0
    if duration:
        position = min(position, float(duration))
    return round(position, 3)


def join_update(session: Dict[str, Any], user_id: str) -> Optional[Dict[str, Any]]:
    require_active(session)
    participants = list(session.get("participants") or [])
    if user_id in participants:
        return None
    participants.append(user_id)
    return {"participants": participants}


def leave_update(session: Dict[str, Any], user_id: str, now) -> Dict[str, Any]:
    require_active(session)
    participants = [p for p in session.get("participants") or [] if p != user_id]
    if len(participants) == len(session.get("participants") or []):
        raise Conflict("not_in_session")
    updates = {"participants": participants}
    if not participants:
        updates.update(end_update(session, now))
    return updates


def playback_update(session: Dict[str, Any], user_id: str, is_playing, current_time, now) -> Dict[str, Any]:
    require_active(session)
    if user_id not in (session.get("participants") or []):
        raise PermissionDenied("not_in_session")
    if not isinstance(is_playing, bool):
        raise InvalidInput("invalid_is_playing")
    try:
        current_time = float(current_time)
    except (TypeError, ValueError):
        raise InvalidInput("invalid_current_time")
    if current_time < 0:
        raise InvalidInput("invalid_current_time")
    return {"isPlaying": is_playing, "currentTime": current_time, "updatedAt": now, "updatedBy": user_id}


def end_update(session: Dict[str, Any], now) -> Dict[str, Any]:
    return {
        "isActive": False,
        "isPlaying": False,
        "currentTime": current_position(session, now),
        "endedAt": now,
        "updatedAt": now,
    }
