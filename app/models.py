"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.storage import Base, utc_now


MESSAGE_TYPES = ("text", "image", "video")


class User(Base):
    """
    A student account.

    Table: users
    Unique: username, email
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    avatar = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    semester = Column(String, nullable=True)
    department = Column(String, nullable=True)
    profile_setup_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False, default=utc_now)
    updated_at = Column(String, nullable=False, default=utc_now, onupdate=utc_now)


class Conversation(Base):
    """
    The 1:1 channel between two users.

    Table: conversations
    participant1_id is always the lower user id, so the unique constraint on
    the ordered pair allows one row per unordered pair.
    last_message_id is a denormalized pointer and may lag behind the messages table.
    """
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("participant1_id", "participant2_id", name="uq_conversations_participants"),
        CheckConstraint("participant1_id < participant2_id", name="ck_conversations_ordered_pair"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    participant2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    last_message_id = Column(Integer, nullable=True)
    last_message_at = Column(String, nullable=False, default=utc_now, index=True)
    created_at = Column(String, nullable=False, default=utc_now)
    updated_at = Column(String, nullable=False, default=utc_now, onupdate=utc_now)

    def participant_ids(self) -> tuple:
        return (self.participant1_id, self.participant2_id)

    def other_participant(self, user_id: int) -> int:
        return self.participant2_id if user_id == self.participant1_id else self.participant1_id


class Message(Base):
    """
    A message in a conversation.

    Table: messages
    Only is_read and the unsend tombstone (is_unsent, cleared content/media) change after insert.
    """
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "message_type IN ('text', 'image', 'video')",
            name="ck_messages_message_type"
        ),
        Index("ix_messages_conversation_created", "conversation_id", "created_at", "id"),
        Index("ix_messages_unread", "conversation_id", "is_read", "sender_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    message_type = Column(String, nullable=False, default="text")
    media_url = Column(String, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    is_unsent = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False, default=utc_now)
    updated_at = Column(String, nullable=False, default=utc_now, onupdate=utc_now)
