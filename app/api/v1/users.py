from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from app.api.handler_factory import delete_one, get_all, get_one, success, update_one
from app.api.resources import USERS
from app.core.config import settings
from app.core.deps import current_user_id, get_current_user, require_role
from app.db.session import get_db
from app.models.user import User
from app.schemas.user import ForgotPasswordIn, LoginIn, ResetPasswordIn, SignupIn, UpdatePasswordIn
from app.services import auth_service
from app.services.serialization import document_to_dict

router = APIRouter()
protected = [Depends(get_current_user)]
admins = [Depends(require_role("admin"))]


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _token_response(user: User, *, status_code: int = 200):
    token = auth_service.issue_token(user)
    response = success({"user": document_to_dict(user)}, status_code=status_code, token=token)
    response.set_cookie(
        settings.JWT_COOKIE_NAME,
        token,
        max_age=int(settings.JWT_TTL_DAYS) * 24 * 60 * 60,
        httponly=True,
        secure=bool(settings.JWT_COOKIE_SECURE),
        samesite="lax",
    )
    return response


@router.post("/signup", status_code=201)
def signup(payload: SignupIn, request: Request, db: Session = Depends(get_db)):
    user = auth_service.signup(db, payload, profile_url=f"{_base_url(request)}/me")
    return _token_response(user, status_code=201)


@router.post("/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = auth_service.login(db, payload.email, payload.password)
    return _token_response(user)


@router.get("/logout")
def logout():
    response = success(None)
    response.set_cookie(settings.JWT_COOKIE_NAME, "loggedout", max_age=10, httponly=True)
    return response


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordIn, request: Request, db: Session = Depends(get_db)):
    auth_service.forgot_password(
        db,
        payload.email,
        reset_url_for=lambda token: f"{_base_url(request)}{request.url.path.rsplit('/', 1)[0]}/reset-password/{token}",
    )
    return success(None, message="Token sent to email!")


@router.patch("/reset-password/{token}")
def reset_password(token: str, payload: ResetPasswordIn, db: Session = Depends(get_db)):
    user = auth_service.reset_password(db, token, payload.password)
    return _token_response(user)


@router.patch("/update-my-password")
def update_my_password(
    payload: UpdatePasswordIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = auth_service.update_password(db, user, payload.password_current, payload.password)
    return _token_response(user)


router.add_api_route("/me", get_one(USERS, resolve_id=current_user_id), methods=["GET"], dependencies=protected, name="get_me")


@router.patch("/update-me")
def update_me(
    payload: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = auth_service.update_me(db, user, payload)
    return success({"user": document_to_dict(user)})


@router.delete("/delete-me", status_code=204)
def delete_me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    auth_service.deactivate(db, user)
    return Response(status_code=204)


@router.post("", dependencies=admins)
def create_user():
    raise HTTPException(status_code=500, detail="This route is not defined! Please use /signup instead")


router.add_api_route("", get_all(USERS), methods=["GET"], dependencies=admins, name="list_users")
router.add_api_route("/{id}", get_one(USERS), methods=["GET"], dependencies=admins, name="get_user")
router.add_api_route("/{id}", update_one(USERS), methods=["PATCH"], dependencies=admins, name="update_user")
router.add_api_route("/{id}", delete_one(USERS), methods=["DELETE"], status_code=204, dependencies=admins, name="delete_user")
