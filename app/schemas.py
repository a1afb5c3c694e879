"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# =============================================================================
# User Models
# =============================================================================

class UserCreateRequest(BaseModel):
    """Signup payload. Field names follow the web client (camelCase display name accepted)."""
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)
    avatar: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    semester: Optional[str] = None
    department: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("username must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserResponse(BaseModel):
    """Public user profile. The credential hash is never serialized."""
    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    semester: Optional[str] = None
    department: Optional[str] = None
    profile_setup_complete: bool = False
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Conversation Models
# =============================================================================

class ConversationCreateRequest(BaseModel):
    """Participants may be given in either order; the server orders them."""
    participant1_id: int = Field(..., description="One participant's user id")
    participant2_id: int = Field(..., description="The other participant's user id")


class ConversationResponse(BaseModel):
    id: int
    participant1_id: int = Field(..., description="Lower of the two participant ids")
    participant2_id: int = Field(..., description="Higher of the two participant ids")
    last_message_id: Optional[int] = None
    last_message_at: str
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class ConversationSummary(BaseModel):
    """A conversation as shown in a user's conversation list."""
    id: int
    participant1_id: int
    participant2_id: int
    other_participant_id: int
    other_username: Optional[str] = None
    other_avatar: Optional[str] = None
    last_message_id: Optional[int] = None
    last_message_content: Optional[str] = None
    last_message_type: Optional[str] = None
    last_message_sender_id: Optional[int] = None
    last_message_unsent: bool = False
    last_message_at: str
    unread_count: int = Field(..., ge=0)
    created_at: str
    updated_at: str


# =============================================================================
# Message Models
# =============================================================================

class MessageCreateRequest(BaseModel):
    """
    Payload for sending a message.

    message_type is checked by the messaging layer so an unknown kind
    surfaces as INVALID_MESSAGE_KIND rather than a generic validation error.
    """
    conversation_id: int
    sender_id: int
    content: Optional[str] = Field(None, max_length=4096)
    message_type: str = Field(default="text", description="text, image or video")
    media_url: Optional[str] = None


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    message_type: str
    media_url: Optional[str] = None
    is_read: bool
    is_unsent: bool
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class UnsendRequest(BaseModel):
    user_id: int = Field(..., description="Caller; must be the message's sender")


class MarkReadResponse(BaseModel):
    updated: int = Field(..., ge=0, description="Messages newly marked as read")


class UnreadCountResponse(BaseModel):
    count: int = Field(..., ge=0)


# =============================================================================
# Misc Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


class ResetResponse(BaseModel):
    message: str
