"""
Push notifications for the messenger clients.

iOS devices get APNs pushes: VoIP pushes wake the app for incoming calls,
alert pushes carry new-message banners. Android and browsers get FCM
messages through the Firebase Admin SDK.
"""
import logging
import os
import time
import jwt
import httpx
from dataclasses import dataclass
from typing import Optional, Dict, Any

logger = logging.getLogger("messenger")

# APNs rejects provider tokens older than an hour and throttles refreshes
# more frequent than every 20 minutes.
APNS_TOKEN_LIFETIME = 50 * 60


@dataclass
class PushResult:
    """Result of a push notification attempt"""
    success: bool
    platform: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def _failure(platform: str, error: str, error_code: str) -> PushResult:
    return PushResult(success=False, platform=platform, error=error, error_code=error_code)


class APNsService:
    """
    Apple Push Notification service over HTTP/2 with token (JWT) auth.

    ``push_type`` "voip" goes to the ``<bundle>.voip`` topic and is never
    stored for later delivery; "alert" goes to the app's own topic.
    """

    PRODUCTION_HOST = "api.push.apple.com"
    SANDBOX_HOST = "api.sandbox.push.apple.com"

    def __init__(self):
        self.team_id = os.environ.get("APNS_TEAM_ID")
        self.key_id = os.environ.get("APNS_KEY_ID")
        self.bundle_id = os.environ.get("APNS_BUNDLE_ID")
        self.use_sandbox = os.environ.get("APNS_USE_SANDBOX", "0") == "1"
        self.private_key = self._load_key()
        self._token: Optional[str] = None
        self._token_issued_at = 0.0

    @staticmethod
    def _load_key() -> Optional[str]:
        key_path = os.environ.get("APNS_KEY_PATH")
        if key_path and os.path.exists(key_path):
            with open(key_path, "r") as f:
                return f.read()
        key_content = os.environ.get("APNS_KEY_CONTENT")
        if key_content:
            # Escaped newlines in env var
            return key_content.replace("\\n", "\n")
        return None

    def is_configured(self) -> bool:
        return all([self.team_id, self.key_id, self.bundle_id, self.private_key])

    def provider_token(self) -> str:
        now = time.time()
        if self._token is None or now - self._token_issued_at > APNS_TOKEN_LIFETIME:
            self._token = jwt.encode(
                {"iss": self.team_id, "iat": int(now)},
                self.private_key,
                algorithm="ES256",
                headers={"alg": "ES256", "kid": self.key_id},
            )
            self._token_issued_at = now
        return self._token

    def _headers(self, push_type: str, collapse_id: str) -> Dict[str, str]:
        headers = {
            "authorization": f"bearer {self.provider_token()}",
            "apns-push-type": push_type,
            "apns-priority": "10",
        }
        if push_type == "voip":
            headers["apns-topic"] = f"{self.bundle_id}.voip"
            headers["apns-expiration"] = "0"
        else:
            headers["apns-topic"] = self.bundle_id
        if collapse_id:
            headers["apns-collapse-id"] = collapse_id[:64]
        return headers

    async def send(
        self,
        device_token: str,
        payload: Dict[str, Any],
        push_type: str = "alert",
        collapse_id: str = "",
    ) -> PushResult:
        """
        Send one push to an iOS device.

        Args:
            device_token: VoIP token for "voip" pushes, APNs device token otherwise
            payload: full APNs body, including ``aps``
            push_type: "voip" or "alert"
            collapse_id: pushes sharing it replace each other on the device
        """
        if not self.is_configured():
            return _failure("ios", "APNs not configured", "not_configured")

        host = self.SANDBOX_HOST if self.use_sandbox else self.PRODUCTION_HOST
        url = f"https://{host}/3/device/{device_token}"

        try:
            async with httpx.AsyncClient(http2=True) as client:
                response = await client.post(url, headers=self._headers(push_type, collapse_id), json=payload,
                                             timeout=30.0)
        except httpx.TimeoutException:
            logger.error(f"[APNs] {push_type} push timeout")
            return _failure("ios", "Request timeout", "timeout")
        except httpx.HTTPError as e:
            logger.error(f"[APNs] {push_type} push exception: {e}")
            return _failure("ios", str(e), "exception")

        if response.status_code == 200:
            apns_id = response.headers.get("apns-id")
            logger.info(f"[APNs] {push_type} push sent: {apns_id}")
            return PushResult(success=True, platform="ios", message_id=apns_id)

        try:
            reason = response.json().get("reason", "Unknown")
        except ValueError:
            reason = response.text or "Unknown error"
        if reason == "ExpiredProviderToken":
            self._token = None

        logger.error(f"[APNs] {push_type} push failed: {response.status_code} - {reason}")
        return _failure("ios", reason, str(response.status_code))


class FCMService:
    """
    Firebase Cloud Messaging for Android (data messages) and browsers (web push).
    """

    def __init__(self):
        self._messaging = None

    def _get_messaging(self):
        if self._messaging is not None:
            return self._messaging

        from firebase_admin import messaging
        from .firebase_service import get_firebase_app

        if get_firebase_app() is not None:
            self._messaging = messaging
            logger.info("[FCM] Firebase messaging initialized")
        else:
            logger.warning("[FCM] Firebase app not initialized")

        return self._messaging

    def is_configured(self) -> bool:
        return self._get_messaging() is not None

    def _build(self, messaging, device_token, data, platform, title, body, ttl):
        if platform == "web":
            return messaging.Message(
                token=device_token,
                data=data,
                webpush=messaging.WebpushConfig(
                    headers={"Urgency": "high", "TTL": str(ttl)},
                    notification=messaging.WebpushNotification(
                        title=title or "New notification",
                        body=body or "",
                        tag=data.get("callId") or data.get("chatId"),
                    ) if title else None,
                ),
            )
        return messaging.Message(
            token=device_token,
            data=data,
            android=messaging.AndroidConfig(priority="high", ttl=ttl, direct_boot_ok=True),
        )

    async def send(
        self,
        device_token: str,
        data: Dict[str, Any],
        platform: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
        ttl: int = 60,
    ) -> PushResult:
        """
        Android always gets a data message and renders it itself; browsers
        get a webpush notification when there is a title to show.
        """
        messaging = self._get_messaging()
        if messaging is None:
            return _failure(platform, "FCM not configured", "not_configured")

        # FCM data values must be strings
        string_data = {k: str(v) for k, v in data.items() if v is not None}
        if platform == "android" and title:
            string_data.update({"title": title, "body": body or ""})

        try:
            response = messaging.send(self._build(messaging, device_token, string_data, platform, title, body, ttl))
        except messaging.UnregisteredError:
            logger.warning(f"[FCM] Token unregistered: {device_token[:20]}...")
            return _failure(platform, "Token unregistered", "UNREGISTERED")
        except messaging.SenderIdMismatchError:
            logger.error("[FCM] Sender ID mismatch")
            return _failure(platform, "Sender ID mismatch", "SENDER_ID_MISMATCH")
        except Exception as e:
            logger.error(f"[FCM] Send error: {e}")
            return _failure(platform, str(e), "exception")

        logger.info(f"[FCM] Message sent ({platform}): {response}")
        return PushResult(success=True, platform=platform, message_id=response)


class PushNotificationService:
    """
    Routes call and message pushes to whichever device a user registered.
    """

    def __init__(self):
        self.apns = APNsService()
        self.fcm = FCMService()

    async def send_to_user(
        self,
        tokens: Optional[Dict[str, Any]],
        payload: Dict[str, Any],
        title: Optional[str] = None,
        body: Optional[str] = None,
        voip: bool = False,
        collapse_id: str = "",
        ttl: int = 60,
    ) -> PushResult:
        """
        Args:
            tokens: result of FirestoreService.get_user_tokens
            payload: data fields sent to the device
            title, body: visible notification text
            voip: call signalling; iOS devices are woken through PushKit
            collapse_id: newer pushes with the same id replace older ones
            ttl: seconds FCM keeps an undelivered message
        """
        if not tokens or not tokens.get("exists"):
            return _failure(
                "",
                "User not found" if tokens is not None else "Firestore error",
                "user_not_found" if tokens is not None else "firestore_error",
            )

        platform = tokens.get("platform") or "web"
        fcm_token = tokens.get("fcmToken")

        if platform == "ios":
            if voip and tokens.get("voipToken"):
                return await self.apns.send(tokens["voipToken"], {"aps": {"content-available": 1}, **payload},
                                            push_type="voip", collapse_id=collapse_id)
            if not voip and tokens.get("apnsToken"):
                aps = {"alert": {"title": title, "body": body}, "sound": "default", "thread-id": payload.get("chatId")}
                return await self.apns.send(tokens["apnsToken"], {"aps": aps, **payload},
                                            push_type="alert", collapse_id=collapse_id)

        if fcm_token:
            return await self.fcm.send(fcm_token, payload, platform="web" if platform == "web" else "android",
                                       title=title, body=body, ttl=ttl)

        if platform == "ios":
            missing = "voipToken" if voip else "apnsToken"
        else:
            missing = "fcmToken"
        return _failure(platform, f"Missing {missing} for {platform}", "missing_token")

    async def send_incoming_call_push(
        self,
        tokens: Optional[Dict[str, Any]],
        call_id: str,
        caller_id: str,
        caller_name: str,
        call_type: str,
        chat_id: Optional[str] = None,
    ) -> PushResult:
        payload = {
            "type": "incoming_call",
            "callId": call_id,
            "callerId": caller_id,
            "callerName": caller_name,
            "callType": call_type,
            "chatId": chat_id,
        }
        return await self.send_to_user(
            tokens,
            payload,
            title="Incoming video call" if call_type == "video" else "Incoming call",
            body=f"{caller_name} is calling...",
            voip=True,
            collapse_id=call_id,
        )

    async def send_call_cancelled_push(self, tokens: Optional[Dict[str, Any]], call_id: str) -> PushResult:
        """Caller hung up before the call was answered."""
        return await self.send_to_user(tokens, {"type": "call_cancelled", "callId": call_id},
                                       voip=True, collapse_id=call_id)

    async def send_message_push(
        self,
        tokens: Optional[Dict[str, Any]],
        chat_id: str,
        message_id: str,
        sender_name: str,
        preview: str,
    ) -> PushResult:
        payload = {
            "type": "new_message",
            "chatId": chat_id,
            "messageId": message_id,
            "senderName": sender_name,
        }
        return await self.send_to_user(tokens, payload, title=sender_name, body=preview,
                                       collapse_id=chat_id, ttl=24 * 60 * 60)


# Singleton instance
push_service = PushNotificationService()
