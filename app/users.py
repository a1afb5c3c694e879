"""
User repository functions.

Users exist here so conversation participants and message senders can be
validated against real rows; authentication itself lives elsewhere.
"""

import logging
from typing import List, Optional

import bcrypt
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import NotFound, StoreFailure, UserAlreadyExists
from app.models import User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS)"""
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


def create_user(
    db: Session,
    username: str,
    email: str,
    password: str,
    display_name: Optional[str] = None,
    avatar: Optional[str] = None,
    bio: Optional[str] = None,
    semester: Optional[str] = None,
    department: Optional[str] = None,
) -> User:
    """
    Create a user account.

    Raises:
        UserAlreadyExists: username or email is taken
        StoreFailure: any other database error
    """
    logger.info(f"Creating user: username={username}")

    existing = db.query(User).filter(or_(User.username == username, User.email == email)).first()
    if existing is not None:
        field = "username" if existing.username == username else "email"
        raise UserAlreadyExists(field, username if field == "username" else email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        display_name=display_name or username,
        avatar=avatar,
        bio=bio,
        semester=semester,
        department=department,
    )
    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same username/email
        db.rollback()
        if db.query(User.id).filter(User.username == username).first() is not None:
            raise UserAlreadyExists("username", username)
        raise UserAlreadyExists("email", email)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create user {username}: {e}")
        raise StoreFailure("create_user", e) from e

    db.refresh(user)
    logger.info(f"User created: id={user.id}")
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def get_user_by_username(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFound("User", username)
    return user


def list_users(db: Session) -> List[User]:
    """All users, newest first."""
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
