from datetime import timezone
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_jwt
from app.db.session import get_db
from app.models.user import User

bearer = HTTPBearer(auto_error=False)

def _token_from_request(request: Request, creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds and creds.credentials:
        return creds.credentials
    cookie = request.cookies.get(settings.JWT_COOKIE_NAME)
    if cookie and cookie != "loggedout":
        return cookie
    return None

def changed_password_after(user: User, issued_at: int) -> bool:
    changed = user.password_changed_at
    if changed is None:
        return False
    if changed.tzinfo is None:
        changed = changed.replace(tzinfo=timezone.utc)
    return int(issued_at) < int(changed.timestamp())

def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    token = _token_from_request(request, creds)
    if not token:
        raise HTTPException(status_code=401, detail="You are not logged in! Please log in to get access.")
    try:
        payload = decode_jwt(token, settings.JWT_SECRET)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token. Please log in again!")
    user = db.get(User, _user_id(payload.get("sub")))
    if user is None or not user.active:
        raise HTTPException(status_code=401, detail="The user belonging to this token does no longer exist.")
    if changed_password_after(user, payload.get("iat") or 0):
        raise HTTPException(status_code=401, detail="User recently changed password! Please log in again.")
    request.state.user = user
    return user

def _user_id(sub):
    try:
        return UUID(str(sub or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token. Please log in again!")

def require_role(*roles: str):
    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="You do not have permission to perform this action")
        return user
    return _inner

def current_user_id(request: Request) -> str:
    return str(request.state.user.id)
