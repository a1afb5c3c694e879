"""
Error taxonomy for the messaging service.

Every error raised by the core carries a machine-readable ``code`` and the
HTTP status it maps to, so the API layer can translate it with a single
exception handler.

Usage:
    from app.errors import NotAParticipant

    if sender_id not in (conversation.participant1_id, conversation.participant2_id):
        raise NotAParticipant(sender_id, conversation.id)
"""

from typing import Any, Dict, Optional


class CGUConnectError(Exception):
    """Base exception for all CGU Connect errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "details": self.details
        }


# =============================================================================
# Validation Errors (raised before any write)
# =============================================================================

class InvalidParticipant(CGUConnectError):
    """Self-conversation or a participant that does not reference a user"""

    status_code = 400

    def __init__(self, message: str, participant_id: Optional[int] = None):
        details = {"participant_id": participant_id} if participant_id is not None else None
        super().__init__(message, code="INVALID_PARTICIPANT", details=details)


class InvalidMessageKind(CGUConnectError):
    status_code = 422

    def __init__(self, message_type: Any):
        super().__init__(
            f"Invalid message type: {message_type!r}",
            code="INVALID_MESSAGE_KIND",
            details={"message_type": message_type}
        )


class EmptyMessageContent(CGUConnectError):
    status_code = 422

    def __init__(self):
        super().__init__("Text messages must have non-empty content", code="EMPTY_CONTENT")


class MissingMediaReference(CGUConnectError):
    """Image/video message without media_url while REQUIRE_MEDIA_URL is on"""

    status_code = 422

    def __init__(self, message_type: str):
        super().__init__(
            f"A {message_type} message requires a media_url",
            code="MISSING_MEDIA",
            details={"message_type": message_type}
        )


# =============================================================================
# Authorization Errors
# =============================================================================

class NotAParticipant(CGUConnectError):
    status_code = 403

    def __init__(self, user_id: int, conversation_id: int):
        super().__init__(
            f"User {user_id} is not a participant of conversation {conversation_id}",
            code="NOT_A_PARTICIPANT",
            details={"user_id": user_id, "conversation_id": conversation_id}
        )


class NotAuthorized(CGUConnectError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# =============================================================================
# Resource Errors
# =============================================================================

class NotFound(CGUConnectError):
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            code="NOT_FOUND",
            details={"resource": resource, "id": identifier}
        )


class DuplicateConversation(CGUConnectError):
    """Lost a creation race on (participant1_id, participant2_id); retry as a lookup"""

    status_code = 409

    def __init__(self, low_id: int, high_id: int):
        super().__init__(
            f"Conversation between {low_id} and {high_id} already exists",
            code="DUPLICATE_CONVERSATION",
            details={"participant1_id": low_id, "participant2_id": high_id}
        )
        self.low_id = low_id
        self.high_id = high_id


class UserAlreadyExists(CGUConnectError):
    status_code = 409

    def __init__(self, field: str, value: str):
        super().__init__(
            f"A user with this {field} already exists",
            code="USER_EXISTS",
            details={field: value}
        )


# =============================================================================
# Store Errors
# =============================================================================

class StoreFailure(CGUConnectError):
    status_code = 500

    def __init__(self, operation: str, original: Optional[Exception] = None):
        super().__init__(
            f"Database error during {operation}",
            code="STORE_FAILURE",
            details={"operation": operation}
        )
        self.original = original
