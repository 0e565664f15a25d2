import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

import littlefish.schemas.auth as schemas
from littlefish.core.dependencies import SESSION_USER_KEY, get_current_user
from littlefish.core.errors import Conflict, Unauthorized
from littlefish.core.security import hash_password, verify_password
from littlefish.db.session import get_db
from littlefish.models.users import User
from littlefish.schemas.my_base_model import Message
from littlefish.services.wallet_link import unlink_wallet_session

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Auth"]


@router.post(
    "/register",
    tags=group_tags,
    response_model=schemas.UserResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(body: schemas.RegisterRequest, request: Request, db: Session = Depends(get_db)) -> schemas.UserResponse:
    """Create an account and log it in."""
    existing = (
        db.query(User)
        .filter(or_(User.username == body.username, User.email == body.email))
        .first()
    )
    if existing is not None:
        field = "username" if existing.username == body.username else "email"
        raise Conflict(f"{field.capitalize()} already exists", {field: "already exists"})

    user = User(
        username=body.username,
        password=hash_password(body.password),
        name=body.name,
        email=body.email,
        avatar=body.avatar,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    return schemas.UserResponse.from_record(user)


@router.post(
    "/login",
    tags=group_tags,
    response_model=schemas.UserResponse,
)
def login(body: schemas.LoginRequest, request: Request, db: Session = Depends(get_db)) -> schemas.UserResponse:
    """Credential login. Wallet linking requires this session first."""
    user = db.query(User).filter(User.username == body.username).first()
    if user is None or not verify_password(body.password, user.password):
        raise Unauthorized("Invalid username or password")

    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    logger.info("user %s logged in", user.id)
    return schemas.UserResponse.from_record(user)


@router.post(
    "/logout",
    tags=group_tags,
    response_model=Message,
)
def logout(request: Request, db: Session = Depends(get_db)) -> Message:
    """End the session and tear down any active wallet session."""
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is not None:
        unlink_wallet_session(db, int(user_id))
    request.session.clear()
    return Message(message="Logged out")


@router.get(
    "/user",
    tags=group_tags,
    response_model=schemas.UserResponse,
)
def current_user(user: User = Depends(get_current_user)) -> schemas.UserResponse:
    return schemas.UserResponse.from_record(user)
