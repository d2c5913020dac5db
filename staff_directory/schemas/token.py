# staff_directory/schemas/token.py
from datetime import datetime

from pydantic import BaseModel, Field


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: int


class LoginRequest(BaseModel):
    id_card: str
    password: str


class IdCardRequest(BaseModel):
    id_card: str


class OtpVerifyRequest(BaseModel):
    id_card: str
    otp: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetVerify(BaseModel):
    email: str
    token: str


class PasswordResetConfirm(BaseModel):
    email: str
    token: str
    new_password: str = Field(min_length=6)


class OtpStatus(BaseModel):
    is_verified: bool
    has_otp: bool
    otp_expires_at: datetime | None = None
    email: str
    is_locked: bool
    locked_at: datetime | None = None
    locked_reason: str | None = None
