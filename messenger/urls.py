from django.urls import path
from . import views

urlpatterns = [
    # Health check
    path("health", views.health, name="health"),

    # Chats
    path("chats", views.chat_collection, name="chat_collection"),
    path("chats/<str:chat_id>", views.chat_detail, name="chat_detail"),
    path("chats/<str:chat_id>/settings", views.chat_settings, name="chat_settings"),
    path("chats/<str:chat_id>/read", views.chat_mark_read, name="chat_mark_read"),
    path("chats/<str:chat_id>/messages", views.chat_messages, name="chat_messages"),
    path("chats/<str:chat_id>/polls", views.poll_create, name="poll_create"),

    # Messages
    path("messages/starred", views.message_starred, name="message_starred"),
    path("messages/delete", views.message_bulk_delete, name="message_bulk_delete"),
    path("messages/<str:message_id>/edit", views.message_edit, name="message_edit"),
    path("messages/<str:message_id>/delete", views.message_delete, name="message_delete"),
    path("messages/<str:message_id>/status", views.message_status, name="message_status"),
    path("messages/<str:message_id>/reactions", views.message_reactions, name="message_reactions"),
    path("messages/<str:message_id>/star", views.message_star, name="message_star"),
    path("messages/<str:message_id>/thread", views.message_thread, name="message_thread"),
    path("messages/<str:message_id>/translate", views.message_translate, name="message_translate"),
    path("link-preview", views.link_preview_view, name="link_preview"),

    # Polls
    path("polls/<str:message_id>", views.poll_detail, name="poll_detail"),
    path("polls/<str:message_id>/vote", views.poll_vote, name="poll_vote"),
    path("polls/<str:message_id>/close", views.poll_close, name="poll_close"),

    # Groups
    path("groups/<str:group_id>/info", views.group_info, name="group_info"),
    path("groups/<str:group_id>/settings", views.group_settings, name="group_settings"),
    path("groups/<str:group_id>/participants", views.group_add_participants, name="group_add_participants"),
    path("groups/<str:group_id>/participants/remove", views.group_remove_participant,
         name="group_remove_participant"),
    path("groups/<str:group_id>/roles", views.group_set_role, name="group_set_role"),
    path("groups/<str:group_id>/transfer", views.group_transfer_ownership, name="group_transfer_ownership"),
    path("groups/<str:group_id>/leave", views.group_leave, name="group_leave"),

    # Invite links
    path("groups/<str:group_id>/invite-link", views.group_invite_link, name="group_invite_link"),
    path("groups/<str:group_id>/invite-link/reset", views.group_invite_link_reset, name="group_invite_link_reset"),
    path("invite/<str:link_id>", views.invite_detail, name="invite_detail"),
    path("invite/<str:link_id>/join", views.invite_join, name="invite_join"),

    # 1:1 calls (Firestore signaling)
    # Note: Device tokens are stored by app directly in Firestore users/{uid}
    path("call/invite", views.call_invite, name="call_invite"),
    path("call/offer", views.call_offer, name="call_offer"),
    path("call/answer", views.call_answer, name="call_answer"),
    path("call/ice", views.call_ice, name="call_ice"),
    path("call/ice/<str:call_id>", views.call_ice_list, name="call_ice_list"),
    path("call/reject", views.call_reject, name="call_reject"),
    path("call/cancel", views.call_cancel, name="call_cancel"),
    path("call/missed", views.call_missed, name="call_missed"),
    path("call/end", views.call_end, name="call_end"),
    path("call/timeout/sweep", views.call_timeout_sweep, name="call_timeout_sweep"),
    path("call/status/<str:call_id>", views.call_status, name="call_status"),
    path("call/history", views.call_history, name="call_history"),
    path("call/ice-servers", views.call_ice_servers, name="call_ice_servers"),

    # Group calls
    path("call/group", views.group_call_create, name="group_call_create"),
    path("call/group/<str:call_id>", views.group_call_detail, name="group_call_detail"),
    path("call/group/<str:call_id>/join", views.group_call_join, name="group_call_join"),
    path("call/group/<str:call_id>/leave", views.group_call_leave, name="group_call_leave"),
    path("call/group/<str:call_id>/signal", views.group_call_signal, name="group_call_signal"),

    # Games
    path("games", views.game_collection, name="game_collection"),
    path("games/stats", views.game_stats, name="game_stats"),
    path("games/<str:game_id>", views.game_detail, name="game_detail"),
    path("games/<str:game_id>/join", views.game_join, name="game_join"),
    path("games/<str:game_id>/start", views.game_start, name="game_start"),
    path("games/<str:game_id>/move", views.game_move, name="game_move"),
    path("games/<str:game_id>/resign", views.game_resign, name="game_resign"),

    # Music sessions
    path("music", views.music_collection, name="music_collection"),
    path("music/<str:session_id>", views.music_detail, name="music_detail"),
    path("music/<str:session_id>/join", views.music_join, name="music_join"),
    path("music/<str:session_id>/leave", views.music_leave, name="music_leave"),
    path("music/<str:session_id>/playback", views.music_playback, name="music_playback"),
    path("music/<str:session_id>/end", views.music_end, name="music_end"),

    # Notifications
    path("notifications", views.notification_list, name="notification_list"),
    path("notifications/read-all", views.notification_read_all, name="notification_read_all"),
    path("notifications/<str:notification_id>/read", views.notification_read, name="notification_read"),
    path("notifications/<str:notification_id>/delete", views.notification_delete, name="notification_delete"),

    # Follows and blocking
    path("users/blocked", views.blocked_users, name="blocked_users"),
    path("users/<str:target_id>/follow", views.follow_user, name="follow_user"),
    path("users/<str:target_id>/unfollow", views.unfollow_user, name="unfollow_user"),
    path("users/<str:target_id>/follow-status", views.follow_status, name="follow_status"),
    path("users/<str:target_id>/followers", views.follower_list, name="follower_list"),
    path("users/<str:target_id>/following", views.following_list, name="following_list"),
    path("users/<str:target_id>/follow-stats", views.follow_stats, name="follow_stats"),
    path("users/<str:target_id>/block", views.user_block, name="user_block"),
    path("users/<str:target_id>/unblock", views.user_unblock, name="user_unblock"),
    path("follow-requests", views.follow_requests, name="follow_requests"),
    path("follow-requests/<str:follower_id>/accept", views.follow_request_accept, name="follow_request_accept"),
    path("follow-requests/<str:follower_id>/reject", views.follow_request_reject, name="follow_request_reject"),

    # Status updates
    path("statuses", views.status_collection, name="status_collection"),
    path("statuses/<str:status_id>/view", views.status_view, name="status_view"),
    path("statuses/<str:status_id>/viewers", views.status_viewers, name="status_viewers"),
    path("statuses/<str:status_id>/delete", views.status_delete, name="status_delete"),
]
