from .health import health
from .chats import chat_collection, chat_detail, chat_settings, chat_mark_read
from .messages import (
    chat_messages,
    message_edit,
    message_delete,
    message_bulk_delete,
    message_status,
    message_reactions,
    message_star,
    message_starred,
    message_thread,
    message_translate,
    link_preview_view,
)
from .polls import poll_create, poll_vote, poll_close, poll_detail
from .groups import (
    group_info,
    group_settings,
    group_add_participants,
    group_remove_participant,
    group_set_role,
    group_transfer_ownership,
    group_leave,
)
from .invites import group_invite_link, group_invite_link_reset, invite_detail, invite_join
from .calls import (
    call_invite,
    call_offer,
    call_answer,
    call_ice,
    call_ice_list,
    call_reject,
    call_cancel,
    call_missed,
    call_end,
    call_timeout_sweep,
    call_status,
    call_history,
    call_ice_servers,
)
from .group_calls import group_call_create, group_call_join, group_call_leave, group_call_signal, group_call_detail
from .games import game_collection, game_detail, game_join, game_start, game_move, game_resign, game_stats
from .music import music_collection, music_detail, music_join, music_leave, music_playback, music_end
from .notifications import notification_list, notification_read, notification_read_all, notification_delete
from .follows import (
    follow_user,
    unfollow_user,
    follow_status,
    follower_list,
    following_list,
    follow_stats,
    follow_requests,
    follow_request_accept,
    follow_request_reject,
    user_block,
    user_unblock,
    blocked_users,
)
from .status import status_collection, status_view, status_viewers, status_delete

__all__ = [
    "health",
    "chat_collection",
    "chat_detail",
    "chat_settings",
    "chat_mark_read",
    "chat_messages",
    "message_edit",
    "message_delete",
    "message_bulk_delete",
    "message_status",
    "message_reactions",
    "message_star",
    "message_starred",
    "message_thread",
    "message_translate",
    "link_preview_view",
    "poll_create",
    "poll_vote",
    "poll_close",
    "poll_detail",
    "group_info",
    "group_settings",
    "group_add_participants",
    "group_remove_participant",
    "group_set_role",
    "group_transfer_ownership",
    "group_leave",
    "group_invite_link",
    "group_invite_link_reset",
    "invite_detail",
    "invite_join",
    "call_invite",
    "call_offer",
    "call_answer",
    "call_ice",
    "call_ice_list",
    "call_reject",
    "call_cancel",
    "call_missed",
    "call_end",
    "call_timeout_sweep",
    "call_status",
    "call_history",
    "call_ice_servers",
    "group_call_create",
    "group_call_join",
    "group_call_leave",
    "group_call_signal",
    "group_call_detail",
    "game_collection",
    "game_detail",
    "game_join",
    "game_start",
    "game_move",
    "game_resign",
    "game_stats",
    "music_collection",
    "music_detail",
    "music_join",
    "music_leave",
    "music_playback",
    "music_end",
    "notification_list",
    "notification_read",
    "notification_read_all",
    "notification_delete",
    "follow_user",
    "unfollow_user",
    "follow_status",
    "follower_list",
    "following_list",
    "follow_stats",
    "follow_requests",
    "follow_request_accept",
    "follow_request_reject",
    "user_block",
    "user_unblock",
    "blocked_users",
    "status_collection",
    "status_view",
    "status_viewers",
    "status_delete",
]
