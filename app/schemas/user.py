import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Role = Literal["user", "guide", "lead-guide", "admin"]

def normalize_email(value: str) -> str:
    email = str(value or "").strip().lower()
    if not _EMAIL_RE.fullmatch(email):
        raise ValueError("Please provide a valid email")
    return email

class _PasswordPair(BaseModel):
    password: str = Field(min_length=8)
    password_confirm: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same")
        return self

class SignupIn(_PasswordPair):
    name: str = Field(min_length=1, max_length=200)
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, value):
        return normalize_email(value)

class LoginIn(BaseModel):
    email: str = ""
    password: str = ""

class ForgotPasswordIn(BaseModel):
    email: str

class ResetPasswordIn(_PasswordPair):
    pass

class UpdatePasswordIn(_PasswordPair):
    password_current: str

class UpdateMeIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value):
        return normalize_email(value) if value is not None else value

class UserAdminUpsert(BaseModel):
    """Fields an administrator may change through the generic user endpoints."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    email: str
    photo: str = "default.jpg"
    role: Role = "user"

    @field_validator("email")
    @classmethod
    def _email(cls, value):
        return normalize_email(value)
