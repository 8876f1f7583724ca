"""
Error types raised by the rule modules.

Views catch ``MessengerError`` and turn it into a JSON error body:
``{"error": <code>, "message": <text>, ...extra}`` with ``status``.
"""
from typing import Any, Dict, Optional


class MessengerError(Exception):
    status = 400

    def __init__(self, code: str, message: str = "", status: Optional[int] = None, **extra: Any):
        super().__init__(message or code)
        self.code = code
        self.message = message or code.replace("_", " ")
        if status is not None:
            self.status = status
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        body.update(self.extra)
        return body


class InvalidInput(MessengerError):
    status = 400


class PermissionDenied(MessengerError):
    status = 403


class NotFound(MessengerError):
    status = 404


class Conflict(MessengerError):
    status = 409
