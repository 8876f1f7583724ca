"""
Firebase service for Django - Firestore access for chats, messages, calls and games.

Firestore Collections:
- users/{uid}: profile plus fcmToken, voipToken, apnsToken, platform for push notifications
- chats/{chatId}: individual and group chats
- chats/{chatId}/userSettings/{uid}: per-user pin/mute/archive state and unread count
- messages/{messageId}: chat messages (polls, replies and reactions are embedded)
- groupInviteLinks/{linkId}: group invite links
- calls/{callId}: call signaling records, ICE candidates in calls/{callId}/candidates
- notifications/{id}: in-app notifications
- games/{gameId}: game rooms
- musicSessions/{sessionId}: shared listening sessions
"""
import os
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import MessengerError

logger = logging.getLogger("messenger")

USERS = "users"
CHATS = "chats"
USER_SETTINGS = "userSettings"
MESSAGES = "messages"
INVITE_LINKS = "groupInviteLinks"
CALLS = "calls"
CANDIDATES = "candidates"
NOTIFICATIONS = "notifications"
GAMES = "games"
MUSIC_SESSIONS = "musicSessions"
FOLLOWS = "followRelationships"
STATUSES = "statusUpdates"

# Firebase Admin initialization
_firebase_app = None
_firestore_client = None
_firebase_init_attempted = False


def get_firebase_app():
    """Get or initialize Firebase Admin app"""
    global _firebase_app, _firebase_init_attempted

    if _firebase_app is not None:
        return _firebase_app

    if _firebase_init_attempted:
        return None

    _firebase_init_attempted = True

    import firebase_admin
    from firebase_admin import credentials

    use_emulator = os.environ.get("FIREBASE_USE_EMULATOR", "false").lower() == "true"
    project_id = os.environ.get("FIREBASE_PROJECT_ID")

    logger.info(f"Firebase init: use_emulator={use_emulator}, project_id={project_id}")

    if use_emulator:
        firestore_host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        os.environ["FIRESTORE_EMULATOR_HOST"] = firestore_host

        try:
            _firebase_app = firebase_admin.initialize_app(
                credential=None,
                options={"projectId": project_id or "demo-messenger"},
            )
            logger.info(f"Firebase Admin initialized with EMULATOR (Firestore: {firestore_host})")
        except ValueError:
            _firebase_app = firebase_admin.get_app()
        except Exception as e:
            logger.error(f"Firebase emulator init failed: {e}")
            return None
        return _firebase_app

    service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")

    cred = None
    if service_account_json:
        try:
            cred = credentials.Certificate(json.loads(service_account_json))
            logger.info("Using FIREBASE_SERVICE_ACCOUNT env var")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {e}")
    elif service_account_path and os.path.exists(service_account_path):
        cred = credentials.Certificate(service_account_path)
        logger.info(f"Using service account from {service_account_path}")

    if not cred:
        logger.warning("Firebase credentials not found - Firestore operations will fail")
        return None

    options = {"projectId": project_id} if project_id else None
    try:
        _firebase_app = firebase_admin.initialize_app(cred, options=options)
        logger.info("Firebase Admin initialized (production)")
    except ValueError:
        _firebase_app = firebase_admin.get_app()

    return _firebase_app


def get_firestore():
    """Get Firestore client"""
    global _firestore_client

    if _firestore_client is not None:
        return _firestore_client

    app = get_firebase_app()
    if app is None:
        return None

    try:
        from firebase_admin import firestore
        _firestore_client = firestore.client(app)
        return _firestore_client
    except Exception as e:
        logger.error(f"Failed to get Firestore client: {e}")
        return None


Filter = Tuple[str, str, Any]


class FirestoreService:
    """Service class for Firestore operations"""

    def __init__(self):
        self._db = None

    @property
    def db(self):
        """Lazy initialization of Firestore client"""
        if self._db is None:
            self._db = get_firestore()
        return self._db

    def is_available(self) -> bool:
        """Check if Firestore is available"""
        return self.db is not None

    def _ref(self, collection: str, doc_id: str, sub: Optional[str] = None, sub_id: Optional[str] = None):
        ref = self.db.collection(collection).document(doc_id)
        if sub:
            ref = ref.collection(sub).document(sub_id) if sub_id else ref.collection(sub)
        return ref

    # =========================================================================
    # Documents
    # =========================================================================

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a document as a dict (with its id under ``id``), or None."""
        if not self.db or not doc_id:
            return None

        try:
            doc = self._ref(collection, doc_id).get()
            if not doc.exists:
                return None
            data = doc.to_dict() or {}
            data.setdefault("id", doc.id)
            return data
        except Exception as e:
            logger.error(f"Error getting {collection}/{doc_id}: {e}")
            return None

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> bool:
        if not self.db:
            return False

        try:
            self._ref(collection, doc_id).set(data, merge=merge)
            return True
        except Exception as e:
            logger.error(f"Error writing {collection}/{doc_id}: {e}")
            return False

    def update_document(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        if not self.db:
            return False

        try:
            self._ref(collection, doc_id).update(updates)
            return True
        except Exception as e:
            logger.error(f"Error updating {collection}/{doc_id}: {e}")
            return False

    def delete_document(self, collection: str, doc_id: str) -> bool:
        if not self.db:
            return False

        try:
            self._ref(collection, doc_id).delete()
            return True
        except Exception as e:
            logger.error(f"Error deleting {collection}/{doc_id}: {e}")
            return False

    def query_documents(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Run a simple query.

        Args:
            filters: (field, op, value) tuples, e.g. ("participants", "array-contains", uid)
            order_by: field to order by
            descending: order direction
            limit: max documents

        Returns:
            List of document dicts (each with ``id``) or None on error
        """
        if not self.db:
            return None

        try:
            from firebase_admin import firestore as fb_firestore

            query = self.db.collection(collection)
            for field, op, value in filters:
                query = query.where(field, op, value)
            if order_by:
                direction = fb_firestore.Query.DESCENDING if descending else fb_firestore.Query.ASCENDING
                query = query.order_by(order_by, direction=direction)
            if limit:
                query = query.limit(limit)

            results = []
            for doc in query.stream():
                data = doc.to_dict() or {}
                data.setdefault("id", doc.id)
                results.append(data)
            return results
        except Exception as e:
            logger.error(f"Error querying {collection}: {e}")
            return None

    def batch_update(self, collection: str, updates: Dict[str, Dict[str, Any]]) -> int:
        """Apply {doc_id: updates} in one batch. Returns number of documents written."""
        if not self.db or not updates:
            return 0

        try:
            batch = self.db.batch()
            for doc_id, fields in updates.items():
                batch.update(self._ref(collection, doc_id), fields)
            batch.commit()
            return len(updates)
        except Exception as e:
            logger.error(f"Error in batch update on {collection}: {e}")
            return 0

    def run_transaction(
        self,
        collection: str,
        doc_id: str,
        mutate: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
    ) -> Optional[Dict[str, Any]]:
        """
        Read-modify-write a document inside a Firestore transaction.

        ``mutate`` receives the current document and returns the top-level
        fields to update (or None for no write). A MessengerError raised by
        ``mutate`` aborts the transaction and propagates to the caller.

        Returns:
            The document after the update, or None if it does not exist or
            Firestore failed.
        """
        if not self.db:
            return None

        try:
            from firebase_admin import firestore as fb_firestore
        except Exception as e:
            logger.error(f"Failed to import firestore for transaction: {e}")
            return None

        doc_ref = self._ref(collection, doc_id)

        @fb_firestore.transactional
        def _txn(transaction):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            data = snapshot.to_dict() or {}
            data.setdefault("id", snapshot.id)
            updates = mutate(dict(data))
            if updates:
                transaction.update(doc_ref, updates)
                data.update(updates)
            return data

        try:
            return _txn(self.db.transaction())
        except MessengerError:
            raise
        except Exception as e:
            logger.error(f"Transaction on {collection}/{doc_id} failed: {e}")
            return None

    # =========================================================================
    # Subcollections
    # =========================================================================

    def get_subdocument(self, collection: str, doc_id: str, sub: str, sub_id: str) -> Optional[Dict[str, Any]]:
        if not self.db:
            return None

        try:
            doc = self._ref(collection, doc_id, sub, sub_id).get()
            if not doc.exists:
                return None
            data = doc.to_dict() or {}
            data.setdefault("id", doc.id)
            return data
        except Exception as e:
            logger.error(f"Error getting {collection}/{doc_id}/{sub}/{sub_id}: {e}")
            return None

    def set_subdocument(
        self, collection: str, doc_id: str, sub: str, sub_id: str, data: Dict[str, Any], merge: bool = False
    ) -> bool:
        if not self.db:
            return False

        try:
            self._ref(collection, doc_id, sub, sub_id).set(data, merge=merge)
            return True
        except Exception as e:
            logger.error(f"Error writing {collection}/{doc_id}/{sub}/{sub_id}: {e}")
            return False

    def delete_subdocument(self, collection: str, doc_id: str, sub: str, sub_id: str) -> bool:
        if not self.db:
            return False

        try:
            self._ref(collection, doc_id, sub, sub_id).delete()
            return True
        except Exception as e:
            logger.error(f"Error deleting {collection}/{doc_id}/{sub}/{sub_id}: {e}")
            return False

    def add_subdocument(self, collection: str, doc_id: str, sub: str, data: Dict[str, Any]) -> Optional[str]:
        if not self.db:
            return None

        try:
            _, ref = self._ref(collection, doc_id, sub).add(data)
            return ref.id
        except Exception as e:
            logger.error(f"Error adding to {collection}/{doc_id}/{sub}: {e}")
            return None

    def list_subdocuments(self, collection: str, doc_id: str, sub: str) -> Optional[List[Dict[str, Any]]]:
        if not self.db:
            return None

        try:
            results = []
            for doc in self._ref(collection, doc_id, sub).stream():
                data = doc.to_dict() or {}
                data.setdefault("id", doc.id)
                results.append(data)
            return results
        except Exception as e:
            logger.error(f"Error listing {collection}/{doc_id}/{sub}: {e}")
            return None

    # =========================================================================
    # Users
    # =========================================================================

    def get_user_tokens(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Get push tokens for a user.

        Expected document structure at users/{uid}:
        {
            "fcmToken": "web_or_android_fcm_token",
            "voipToken": "ios_pushkit_token",
            "apnsToken": "ios_alert_token",
            "platform": "web" | "android" | "ios",
            ...
        }

        Returns:
            Dict with token info, {"exists": False} if the user is unknown,
            or None on Firestore errors
        """
        if not self.db:
            logger.warning("Firestore not available")
            return None

        user = self.get_document(USERS, user_id)
        if user is None:
            logger.info(f"User document not found: {user_id}")
            return {"exists": False}

        return {
            "fcmToken": user.get("fcmToken"),
            "voipToken": user.get("voipToken"),
            "apnsToken": user.get("apnsToken"),
            "platform": user.get("platform"),
            "exists": True,
        }

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.get_document(USERS, user_id)

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        users = {}
        for user_id in set(user_ids):
            user = self.get_document(USERS, user_id)
            if user:
                users[user_id] = user
        return users

    # =========================================================================
    # Chats
    # =========================================================================

    def get_user_chat_settings(self, chat_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self.get_subdocument(CHATS, chat_id, USER_SETTINGS, user_id)

    def increment_unread(self, chat_id: str, user_ids: Iterable[str]) -> int:
        """Atomically bump unreadCount in each user's settings for the chat."""
        user_ids = list(user_ids)
        if not self.db or not user_ids:
            return 0

        try:
            from firebase_admin import firestore as fb_firestore

            batch = self.db.batch()
            for user_id in user_ids:
                batch.set(
                    self._ref(CHATS, chat_id, USER_SETTINGS, user_id),
                    {"unreadCount": fb_firestore.Increment(1)},
                    merge=True,
                )
            batch.commit()
            return len(user_ids)
        except Exception as e:
            logger.error(f"Error incrementing unread counts for chat {chat_id}: {e}")
            return 0

    # =========================================================================
    # Calls
    # =========================================================================

    def expired_ringing_calls(self, cutoff_time) -> List[Dict[str, Any]]:
        """Calls still ringing that were created at or before cutoff_time."""
        docs = self.query_documents(CALLS, [
            ("status", "==", "ringing"),
            ("createdAt", "<=", cutoff_time),
        ])
        return docs or []


# Singleton instance
firestore_service = FirestoreService()
