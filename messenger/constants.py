import os

# Calls
MISSED_TIMEOUT_SECONDS = int(os.environ.get("MESSENGER_MISSED_TIMEOUT_SECONDS", "45"))
CALL_TYPES = ("audio", "video")

DEFAULT_ICE_TTL_SECONDS = 3600
MAX_ICE_TTL_SECONDS = 86400

# Chats / messages
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
EDIT_WINDOW_SECONDS = 15 * 60
REPLY_PREVIEW_CHARS = 100
DELETED_MESSAGE_TEXT = "This message was deleted"

MESSAGE_TYPES = (
    "text",
    "image",
    "video",
    "voice",
    "document",
    "location",
    "poll",
    "game_invite",
    "music_share",
)
MEDIA_MESSAGE_TYPES = ("image", "video", "voice", "document")

MESSAGE_STATUS_ORDER = {
    "sent": 0,
    "delivered": 1,
    "read": 2,
}

CHAT_FILTERS = ("all", "unread", "groups", "archived")
CHAT_TOGGLES = ("isPinned", "isMuted", "isArchived", "isLocked")

# Polls
MIN_POLL_OPTIONS = 2
MAX_POLL_OPTIONS = 12

# Groups
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
MAX_GROUP_NAME_LENGTH = 100
MAX_GROUP_DESCRIPTION_LENGTH = 512

DEFAULT_GROUP_SETTINGS = {
    "editInfo": "all",
    "sendMessages": "all",
    "addMembers": "all",
    "approveMembers": False,
    "walkieTalkieEnabled": True,
    "walkieTalkiePermission": "all",
    "walkieTalkieAllowedUsers": [],
    "callRecordingEnabled": True,
    "musicSharingEnabled": True,
    "musicSharingPermission": "all",
}

INVITE_LINK_EXPIRY_HOURS = 72
INVITE_LINK_ID_LENGTH = 12
INVITE_LINK_BASE_URL = os.environ.get("INVITE_LINK_BASE_URL", "http://localhost:5173")

# Notifications
NOTIFICATION_TYPES = (
    "follow_request",
    "follow_accepted",
    "new_follower",
    "follow_back",
    "added_to_group",
    "missed_call",
    "game_invite",
)

# Follows
FOLLOW_PENDING = "pending"
FOLLOW_ACCEPTED = "accepted"

# Status updates
STATUS_TTL_HOURS = 24
STATUS_TYPES = ("image", "video", "text")
STATUS_PRIVACY_OPTIONS = ("all", "contacts", "followers", "followings", "selected")
DEFAULT_STATUS_PRIVACY = "contacts"
MAX_STATUS_TEXT_LENGTH = 700

# Translation
LANGUAGE_CODE_MAP = {
    "English": "en",
    "Spanish": "es",
    "Hindi": "hi",
    "French": "fr",
    "German": "de",
    "Japanese": "ja",
    "Telugu": "te",
    "Tamil": "ta",
    "Kannada": "kn",
    "Malayalam": "ml",
    "Bengali": "bn",
    "Gujarati": "gu",
    "Punjabi": "pa",
    "Marathi": "mr",
}
GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"

# Music
MUSIC_TYPES = ("youtube", "local")
