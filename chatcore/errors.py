"""Service errors; each carries the HTTP status the API answers with."""
from __future__ import annotations


class ChatError(Exception):
    status_code = 400

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail or self.__class__.__name__


class Unauthenticated(ChatError):
    status_code = 401


class InvalidParticipant(ChatError):
    status_code = 400


class UnsupportedAttachment(ChatError):
    status_code = 415


class NotAMember(ChatError):
    status_code = 403


class NotRecipient(ChatError):
    """Raised when the sender of a message tries to mark it read."""
    status_code = 403


class WriteConflict(ChatError):
    status_code = 409


class EmptyMessage(ChatError):
    status_code = 400


class MessageNotFound(ChatError):
    status_code = 404


class UserNotFound(ChatError):
    status_code = 404


class GroupNotFound(ChatError):
    status_code = 404
