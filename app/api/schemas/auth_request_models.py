"""Request models for the account endpoints."""

from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field, model_validator

from app.core.auth import BCRYPT_MAX_BYTES


def _fits_bcrypt(password: str) -> str:
    # 50 characters can still exceed 72 bytes once multi-byte characters are encoded
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must not exceed {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded")
    return password


Password = Annotated[
    str,
    Field(min_length=8, max_length=50, description="Password between 8 and 50 characters"),
    AfterValidator(_fits_bcrypt),
]
Email = Annotated[EmailStr, Field(max_length=320, description="Valid email address")]


class RegisterUserRequest(BaseModel):
    """New reader account. Preferences are set afterwards through the users endpoints."""

    email: Email
    password: Password
    confirm_password: Password

    @model_validator(mode="after")
    def passwords_match(self) -> RegisterUserRequest:
        if self.password != self.confirm_password:
            raise ValueError("Password and confirm password do not match")
        return self


class LoginUserRequest(BaseModel):
    email: Email
    password: Password
