"""
Conversation and message repository functions.

This module provides:
- Conversation resolution with canonical participant ordering
- Message writes that maintain the conversation's last-message pointer
- Read-state tracking (unread counts, mark-as-read, unsend)

Every function takes an explicit session and the caller's user id; nothing
here holds state between requests.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    DuplicateConversation,
    EmptyMessageContent,
    InvalidMessageKind,
    InvalidParticipant,
    MissingMediaReference,
    NotAParticipant,
    NotAuthorized,
    NotFound,
    StoreFailure,
)
from app.models import MESSAGE_TYPES, Conversation, Message, User
from app.storage import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Conversation Resolver
# =============================================================================

def canonical_pair(participant_a: int, participant_b: int) -> Tuple[int, int]:
    """Order two participant ids as (low, high)."""
    return (participant_a, participant_b) if participant_a < participant_b else (participant_b, participant_a)


def _conversation_for_pair(db: Session, low: int, high: int) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.participant1_id == low, Conversation.participant2_id == high)
        .first()
    )


def find_conversation(db: Session, participant_a: int, participant_b: int) -> Optional[Conversation]:
    return _conversation_for_pair(db, *canonical_pair(participant_a, participant_b))


def get_conversation(db: Session, conversation_id: int) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFound("Conversation", conversation_id)
    return conversation


def get_or_create_conversation(
    db: Session,
    participant_a: int,
    participant_b: int
) -> Tuple[Conversation, bool]:
    """
    Return the conversation between two users, creating it if absent.

    The result does not depend on argument order. Repeated calls return the
    same row without side effects.

    Returns:
        Tuple of (conversation, created)

    Raises:
        InvalidParticipant: same user twice, or a user that does not exist
        DuplicateConversation: a concurrent call created the row first;
            the caller should retry with find_conversation()
        StoreFailure: any other database error
    """
    if participant_a == participant_b:
        raise InvalidParticipant("A user cannot start a conversation with themselves", participant_a)

    low, high = canonical_pair(participant_a, participant_b)

    found = {row.id for row in db.query(User.id).filter(User.id.in_([low, high])).all()}
    for participant_id in (low, high):
        if participant_id not in found:
            raise InvalidParticipant(f"User not found: {participant_id}", participant_id)

    existing = find_conversation(db, low, high)
    if existing is not None:
        logger.debug(f"Conversation exists: id={existing.id}, pair=({low}, {high})")
        return existing, False

    now = utc_now()
    conversation = Conversation(
        participant1_id=low,
        participant2_id=high,
        last_message_id=None,
        last_message_at=now,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(conversation)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _conversation_for_pair(db, low, high) is not None:
            logger.info(f"Conversation creation lost a race: pair=({low}, {high})")
            raise DuplicateConversation(low, high)
        # Not the pair uniqueness: a participant vanished after the existence check
        logger.warning(f"Conversation insert rejected for pair ({low}, {high}): {e}")
        raise InvalidParticipant(f"Participants no longer valid: {low}, {high}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create conversation ({low}, {high}): {e}")
        raise StoreFailure("create_conversation", e) from e

    db.refresh(conversation)
    logger.info(f"Conversation created: id={conversation.id}, pair=({low}, {high})")
    return conversation, True


def _require_participant(conversation: Conversation, user_id: int) -> None:
    if user_id not in conversation.participant_ids():
        raise NotAParticipant(user_id, conversation.id)


# =============================================================================
# Message Writer
# =============================================================================

def send_message(
    db: Session,
    conversation_id: int,
    sender_id: int,
    content: Optional[str],
    message_type: str = "text",
    media_url: Optional[str] = None,
) -> Message:
    """
    Append a message to a conversation and advance its last-message pointer.

    The message row is committed first; the pointer update is a second write.
    If the pointer update fails the message still counts as sent and
    list_conversations() reconstructs the last message from the messages table.

    Raises:
        InvalidMessageKind, EmptyMessageContent, MissingMediaReference:
            payload validation, before any lookup or write
        NotFound: unknown conversation
        NotAParticipant: sender is not one of the two participants
        StoreFailure: the message insert failed
    """
    if message_type not in MESSAGE_TYPES:
        raise InvalidMessageKind(message_type)
    if message_type == "text":
        if not content or not content.strip():
            raise EmptyMessageContent()
    elif not media_url and settings.REQUIRE_MEDIA_URL:
        raise MissingMediaReference(message_type)

    conversation = get_conversation(db, conversation_id)
    _require_participant(conversation, sender_id)

    now = utc_now()
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content or "",
        message_type=message_type,
        media_url=media_url or None,
        is_read=False,
        is_unsent=False,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(message)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to store message in conversation {conversation_id}: {e}")
        raise StoreFailure("send_message", e) from e

    db.refresh(message)
    logger.info(f"Message stored: id={message.id}, conversation={conversation_id}, type={message_type}")

    _advance_last_message_pointer(db, message)
    return message


def _advance_last_message_pointer(db: Session, message: Message) -> None:
    # Never move the pointer backwards when two sends race
    try:
        updated = (
            db.query(Conversation)
            .filter(
                Conversation.id == message.conversation_id,
                or_(Conversation.last_message_id.is_(None), Conversation.last_message_id < message.id),
            )
            .update(
                {
                    Conversation.last_message_id: message.id,
                    Conversation.last_message_at: message.created_at,
                    Conversation.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        db.commit()
        logger.debug(f"Conversation pointer update: conversation={message.conversation_id}, rows={updated}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            f"Message {message.id} sent but conversation {message.conversation_id} "
            f"pointer update failed: {e}"
        )


def get_messages(
    db: Session,
    conversation_id: int,
    limit: int = 50,
    offset: int = 0
) -> List[Message]:
    """
    Page through a conversation's messages.

    Pages are cut newest-first (offset 0 is the most recent page) and each
    page is returned in chronological order. Ties on created_at are broken
    by id.
    """
    get_conversation(db, conversation_id)

    newest_first = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    newest_first.reverse()
    return newest_first


def get_message(db: Session, message_id: int) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        raise NotFound("Message", message_id)
    return message


def unsend_message(db: Session, message_id: int, user_id: int) -> Message:
    """
    Tombstone a message: clear its content and media, keep the row as a placeholder.

    Only the original sender may unsend, and only within UNSEND_WINDOW_MINUTES
    of sending. Unsending an already-unsent message is a no-op.

    Raises:
        NotFound: unknown message
        NotAuthorized: caller is not the sender, or the window has passed
    """
    message = get_message(db, message_id)
    if message.sender_id != user_id:
        raise NotAuthorized("Only the sender can unsend a message")
    if message.is_unsent:
        return message

    window = settings.UNSEND_WINDOW_MINUTES
    if window > 0:
        age = datetime.now(timezone.utc) - parse_timestamp(message.created_at)
        if age > timedelta(minutes=window):
            raise NotAuthorized(f"Messages can only be unsent within {window} minutes")

    message.content = ""
    message.media_url = None
    message.is_unsent = True
    message.updated_at = utc_now()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to unsend message {message_id}: {e}")
        raise StoreFailure("unsend_message", e) from e

    db.refresh(message)
    logger.info(f"Message unsent: id={message_id}")
    return message


# =============================================================================
# Read-State Tracker
# =============================================================================

def _unread_for(user_id: int):
    """Filter clauses for messages addressed to user_id that are still unread."""
    return (
        Message.sender_id != user_id,
        Message.is_read.is_(False),
        Message.is_unsent.is_(False),
    )


def get_unread_count(db: Session, user_id: int, conversation_id: int) -> int:
    conversation = get_conversation(db, conversation_id)
    _require_participant(conversation, user_id)

    return (
        db.query(func.count(Message.id))
        .filter(Message.conversation_id == conversation_id, *_unread_for(user_id))
        .scalar()
    ) or 0


def get_global_unread_count(db: Session, user_id: int) -> int:
    """Unread messages addressed to user_id across every conversation they are in."""
    return (
        db.query(func.count(Message.id))
        .join(Conversation, Message.conversation_id == Conversation.id)
        .filter(
            or_(Conversation.participant1_id == user_id, Conversation.participant2_id == user_id),
            *_unread_for(user_id),
        )
        .scalar()
    ) or 0


def mark_conversation_read(db: Session, conversation_id: int, user_id: int) -> int:
    """
    Mark every unread message from the other participant as read.

    A single UPDATE statement, so only messages committed before it runs
    are affected. Returns the number of rows updated; 0 means already caught up.
    """
    conversation = get_conversation(db, conversation_id)
    _require_participant(conversation, user_id)

    try:
        updated = (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id, *_unread_for(user_id))
            .update({Message.is_read: True}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark conversation {conversation_id} read for user {user_id}: {e}")
        raise StoreFailure("mark_conversation_read", e) from e

    logger.info(f"Marked read: conversation={conversation_id}, user={user_id}, updated={updated}")
    return updated


# =============================================================================
# Conversation Listing
# =============================================================================

def _latest_message(db: Session, conversation_id: int) -> Optional[Message]:
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )


def list_conversations(db: Session, user_id: int) -> List[Dict]:
    """
    Conversations for a user, most recently active first.

    Each entry carries the other participant's public profile, the last
    message (from the pointer, or recomputed when the pointer is null,
    dangling or behind the newest message) and the user's unread count.

    Returns:
        List of dictionaries shaped like schemas.ConversationSummary
    """
    conversations = (
        db.query(Conversation)
        .filter(or_(Conversation.participant1_id == user_id, Conversation.participant2_id == user_id))
        .all()
    )
    if not conversations:
        return []

    ids = [c.id for c in conversations]

    unread_counts = dict(
        db.query(Message.conversation_id, func.count(Message.id))
        .filter(Message.conversation_id.in_(ids), *_unread_for(user_id))
        .group_by(Message.conversation_id)
        .all()
    )
    newest_ids = dict(
        db.query(Message.conversation_id, func.max(Message.id))
        .filter(Message.conversation_id.in_(ids))
        .group_by(Message.conversation_id)
        .all()
    )
    pointer_ids = [c.last_message_id for c in conversations if c.last_message_id is not None]
    pointed = {m.id: m for m in db.query(Message).filter(Message.id.in_(pointer_ids)).all()} if pointer_ids else {}

    other_ids = {c.other_participant(user_id) for c in conversations}
    others = {u.id: u for u in db.query(User).filter(User.id.in_(other_ids)).all()}

    summaries = []
    for conversation in conversations:
        last = pointed.get(conversation.last_message_id)
        stale = (
            last is None
            or last.conversation_id != conversation.id
            or newest_ids.get(conversation.id, last.id) > last.id
        )
        if stale and conversation.id in newest_ids:
            logger.debug(f"Last-message pointer stale for conversation {conversation.id}, recomputing")
            last = _latest_message(db, conversation.id)
        elif stale:
            last = None

        other = others.get(conversation.other_participant(user_id))
        summaries.append({
            "id": conversation.id,
            "participant1_id": conversation.participant1_id,
            "participant2_id": conversation.participant2_id,
            "other_participant_id": conversation.other_participant(user_id),
            "other_username": other.username if other else None,
            "other_avatar": other.avatar if other else None,
            "last_message_id": last.id if last else None,
            "last_message_content": last.content if last else None,
            "last_message_type": last.message_type if last else None,
            "last_message_sender_id": last.sender_id if last else None,
            "last_message_unsent": last.is_unsent if last else False,
            "last_message_at": last.created_at if last else conversation.last_message_at,
            "unread_count": unread_counts.get(conversation.id, 0),
            "created_at": conversation.created_at,
            "updated_at": conversation.updated_at,
        })

    summaries.sort(key=lambda s: (s["last_message_at"], s["id"]), reverse=True)
    return summaries
