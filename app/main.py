import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Response, Request, Depends, status, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import CGUConnectError, DuplicateConversation, NotAuthorized, StoreFailure
from app.storage import init_db, check_db_health, get_db, reset_database
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_messaging_data
from app.metrics import (
    get_metrics,
    get_metrics_content_type,
    record_conversation_resolved,
    record_message_sent,
    record_message_unsent,
    record_messages_marked_read,
)
from app import messaging, users
from app.schemas import (
    ConversationCreateRequest,
    ConversationResponse,
    ConversationSummary,
    ErrorResponse,
    HealthResponse,
    MarkReadResponse,
    MessageCreateRequest,
    MessageResponse,
    ResetResponse,
    UnreadCountResponse,
    UnsendRequest,
    UserCreateRequest,
    UserResponse,
)


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="CGU Connect API",
    description="Users, conversations and direct messages for CGU Connect",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(CGUConnectError)
async def cgu_connect_error_handler(request: Request, exc: CGUConnectError) -> JSONResponse:
    """Translate domain errors into JSON responses with their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database errors raised outside the repository functions' own write handling."""
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    failure = StoreFailure(f"{request.method} {request.url.path}", exc)
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the schema
    is applied, otherwise 503.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# User Routes
# =============================================================================

@app.post("/users", response_model=UserResponse, responses={409: {"model": ErrorResponse}})
def create_user(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserResponse:
    user = users.create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        display_name=payload.display_name,
        avatar=payload.avatar,
        bio=payload.bio,
        semester=payload.semester,
        department=payload.department,
    )
    return UserResponse.model_validate(user)


@app.get("/users", response_model=list[UserResponse])
async def list_users(db: Session = Depends(get_db)) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in users.list_users(db)]


@app.get("/users/username/{username}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def get_user_by_username(username: str, db: Session = Depends(get_db)) -> UserResponse:
    return UserResponse.model_validate(users.get_user_by_username(db, username))


@app.get("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
async def get_user(user_id: int, db: Session = Depends(get_db)) -> UserResponse:
    return UserResponse.model_validate(users.get_user(db, user_id))


# =============================================================================
# Conversation Routes
# =============================================================================

@app.post("/conversations", response_model=ConversationResponse, responses=ERROR_RESPONSES)
async def create_conversation(
    request: Request,
    payload: ConversationCreateRequest,
    db: Session = Depends(get_db)
) -> ConversationResponse:
    """
    Get or create the conversation between two users.

    Participant order in the body does not matter; the response always has
    participant1_id < participant2_id.
    """
    try:
        conversation, created = messaging.get_or_create_conversation(
            db, payload.participant1_id, payload.participant2_id
        )
    except DuplicateConversation as e:
        # Another request created it between our lookup and insert
        conversation, created = messaging.find_conversation(db, e.low_id, e.high_id), False
        if conversation is None:
            raise

    result = "created" if created else "existing"
    record_conversation_resolved(created)
    log_messaging_data(request, conversation_id=conversation.id, result=result)
    return ConversationResponse.model_validate(conversation)


@app.get("/conversations/detail/{conversation_id}", response_model=ConversationResponse, responses=ERROR_RESPONSES)
async def get_conversation(conversation_id: int, db: Session = Depends(get_db)) -> ConversationResponse:
    return ConversationResponse.model_validate(messaging.get_conversation(db, conversation_id))


@app.get("/conversations/{user_id}", response_model=list[ConversationSummary])
async def list_conversations(user_id: int, db: Session = Depends(get_db)) -> list[ConversationSummary]:
    """
    Conversations for a user, most recently active first, each with the last
    message and the user's unread count.
    """
    summaries = messaging.list_conversations(db, user_id)
    logger.debug(f"GET /conversations/{user_id}: {len(summaries)} conversations")
    return [ConversationSummary(**s) for s in summaries]


# =============================================================================
# Message Routes
# =============================================================================

@app.post("/messages", response_model=MessageResponse, responses=ERROR_RESPONSES)
async def send_message(
    request: Request,
    payload: MessageCreateRequest,
    db: Session = Depends(get_db)
) -> MessageResponse:
    message = messaging.send_message(
        db,
        conversation_id=payload.conversation_id,
        sender_id=payload.sender_id,
        content=payload.content,
        message_type=payload.message_type,
        media_url=payload.media_url,
    )
    record_message_sent(message.message_type)
    log_messaging_data(request, conversation_id=message.conversation_id, message_id=message.id, result="sent")
    return MessageResponse.model_validate(message)


@app.get("/messages/unread/{user_id}", response_model=UnreadCountResponse)
async def global_unread_count(user_id: int, db: Session = Depends(get_db)) -> UnreadCountResponse:
    return UnreadCountResponse(count=messaging.get_global_unread_count(db, user_id))


@app.get("/messages/{conversation_id}", response_model=list[MessageResponse], responses=ERROR_RESPONSES)
async def list_messages(
    conversation_id: int,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum number of messages to return")] = settings.MESSAGES_PAGE_LIMIT,
    offset: Annotated[int, Query(ge=0, description="Number of most recent messages to skip")] = 0,
    db: Session = Depends(get_db)
) -> list[MessageResponse]:
    """
    Messages of a conversation in chronological order.

    offset counts back from the newest message, so offset=0 is the latest page.
    """
    messages = messaging.get_messages(db, conversation_id, limit=limit, offset=offset)
    return [MessageResponse.model_validate(m) for m in messages]


@app.get("/messages/{conversation_id}/unread/{user_id}", response_model=UnreadCountResponse, responses=ERROR_RESPONSES)
async def conversation_unread_count(
    conversation_id: int,
    user_id: int,
    db: Session = Depends(get_db)
) -> UnreadCountResponse:
    return UnreadCountResponse(count=messaging.get_unread_count(db, user_id, conversation_id))


@app.put("/messages/{conversation_id}/read/{user_id}", response_model=MarkReadResponse, responses=ERROR_RESPONSES)
async def mark_conversation_read(
    request: Request,
    conversation_id: int,
    user_id: int,
    db: Session = Depends(get_db)
) -> MarkReadResponse:
    updated = messaging.mark_conversation_read(db, conversation_id, user_id)
    record_messages_marked_read(updated)
    log_messaging_data(request, conversation_id=conversation_id, result="read")
    return MarkReadResponse(updated=updated)


@app.post("/messages/{message_id}/unsend", response_model=MessageResponse, responses=ERROR_RESPONSES)
async def unsend_message(
    request: Request,
    message_id: int,
    payload: UnsendRequest,
    db: Session = Depends(get_db)
) -> MessageResponse:
    message = messaging.unsend_message(db, message_id, payload.user_id)
    record_message_unsent()
    log_messaging_data(request, conversation_id=message.conversation_id, message_id=message.id, result="unsent")
    return MessageResponse.model_validate(message)


# =============================================================================
# Development Routes
# =============================================================================

@app.delete("/reset-database", response_model=ResetResponse, responses={403: {"model": ErrorResponse}})
async def reset_db(db: Session = Depends(get_db)) -> ResetResponse:
    """Delete all rows. Disabled unless ALLOW_RESET is set."""
    if not settings.ALLOW_RESET:
        raise NotAuthorized("Database reset is disabled")
    reset_database(db)
    return ResetResponse(message="Database cleared successfully")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
