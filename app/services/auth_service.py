from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import create_jwt, create_reset_token, hash_password, hash_reset_token, verify_password
from app.models.common import utcnow
from app.models.user import User
from app.schemas.user import SignupIn, UpdateMeIn, normalize_email
from app.services.email_service import EmailDeliveryError, send_password_reset, send_welcome

_LOG = logging.getLogger("app.auth")

UPDATE_ME_FIELDS = ("name", "email")
PASSWORD_FIELDS = {"password", "password_confirm", "password_current"}


def issue_token(user: User) -> str:
    return create_jwt({"sub": str(user.id)}, settings.JWT_SECRET, timedelta(days=int(settings.JWT_TTL_DAYS)))


def _password_changed_now() -> datetime:
    # One second back so a token issued in the same second stays valid.
    return utcnow() - timedelta(seconds=1)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email, User.active.is_(True)).first()


def signup(db: Session, payload: SignupIn, *, profile_url: str) -> User:
    user = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        role="user",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    try:
        send_welcome(email=user.email, name=user.name, url=profile_url)
    except EmailDeliveryError:
        _LOG.exception("welcome email to %s failed", user.email)
    return user


def login(db: Session, email: str, password: str) -> User:
    if not email or not password:
        raise HTTPException(status_code=400, detail="Please provide email and password!")
    try:
        normalized = normalize_email(email)
    except ValueError:
        normalized = ""
    user = get_user_by_email(db, normalized) if normalized else None
    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Incorrect email or password")
    return user


def forgot_password(db: Session, email: str, *, reset_url_for) -> None:
    try:
        normalized = normalize_email(email)
    except ValueError:
        normalized = ""
    user = get_user_by_email(db, normalized) if normalized else None
    if user is None:
        raise HTTPException(status_code=404, detail="There is no user with that email address.")

    token, digest = create_reset_token()
    user.password_reset_token = digest
    user.password_reset_expires = utcnow() + timedelta(minutes=int(settings.PASSWORD_RESET_TTL_MINUTES))
    db.commit()

    try:
        send_password_reset(email=user.email, name=user.name, url=reset_url_for(token))
    except EmailDeliveryError:
        _LOG.exception("password reset email to %s failed", user.email)
        user.password_reset_token = None
        user.password_reset_expires = None
        db.commit()
        raise HTTPException(status_code=500, detail="There was an error sending the email. Try again later!")


def reset_password(db: Session, token: str, password: str) -> User:
    user = db.query(User).filter(User.password_reset_token == hash_reset_token(token)).first()
    expires = _aware(user.password_reset_expires) if user is not None else None
    if user is None or expires is None or expires <= utcnow():
        raise HTTPException(status_code=400, detail="Token is invalid or has expired")
    user.password_hash = hash_password(password)
    user.password_reset_token = None
    user.password_reset_expires = None
    user.password_changed_at = _password_changed_now()
    db.commit()
    db.refresh(user)
    return user


def update_password(db: Session, user: User, current: str, password: str) -> User:
    if not verify_password(current, user.password_hash):
        raise HTTPException(status_code=401, detail="Your current password is wrong.")
    user.password_hash = hash_password(password)
    user.password_changed_at = _password_changed_now()
    db.commit()
    db.refresh(user)
    return user


def update_me(db: Session, user: User, payload: dict[str, Any]) -> User:
    if PASSWORD_FIELDS & set(payload):
        raise HTTPException(
            status_code=400,
            detail="This route is not for password updates. Please use /update-my-password.",
        )
    data = UpdateMeIn.model_validate({key: payload[key] for key in UPDATE_ME_FIELDS if key in payload})
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, key, value)
    user.updated_at = utcnow()
    user.version = int(user.version or 0) + 1
    db.commit()
    db.refresh(user)
    return user


def deactivate(db: Session, user: User) -> None:
    user.active = False
    db.commit()
