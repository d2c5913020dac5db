# staff_directory/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends, status

from staff_directory.api.deps import get_authenticator, get_directory
from staff_directory.core import security
from staff_directory.db import models
from staff_directory.schemas import token as token_schema
from staff_directory.schemas import user as user_schema
from staff_directory.services.auth import Authenticator
from staff_directory.services.directory import UserDirectory

router = APIRouter()


@router.post("/login", response_model=token_schema.Token)
def login(credentials: token_schema.LoginRequest, auth: Authenticator = Depends(get_authenticator)):
    access_token = auth.login(credentials.id_card, credentials.password)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=user_schema.User, status_code=status.HTTP_201_CREATED)
def register(
    user_in: user_schema.UserCreate,
    directory: UserDirectory = Depends(get_directory),
    current_user: models.User = Depends(security.get_current_user),
):
    """ Registers a new user and sends them a verification code. SUPER_ADMIN only. """
    return directory.register(current_user, user_in)


@router.post("/verify-otp")
def verify_otp(body: token_schema.OtpVerifyRequest, auth: Authenticator = Depends(get_authenticator)):
    auth.verify_otp(body.id_card, body.otp)
    return {"success": True, "message": "Account verified successfully"}


@router.post("/resend-otp")
def resend_otp(body: token_schema.IdCardRequest, auth: Authenticator = Depends(get_authenticator)):
    expires_at = auth.resend_otp(body.id_card)
    return {"success": True, "message": "OTP resent successfully", "expires_at": expires_at}


@router.post("/otp-status", response_model=token_schema.OtpStatus)
def otp_status(body: token_schema.IdCardRequest, auth: Authenticator = Depends(get_authenticator)):
    return auth.otp_status(body.id_card)


@router.post("/forgot-password")
def forgot_password(body: token_schema.PasswordResetRequest, auth: Authenticator = Depends(get_authenticator)):
    """ Always answers the same way, whether or not the address is known. """
    auth.request_password_reset(body.email)
    return {"success": True, "message": "If the email is registered, a reset code has been sent"}


@router.post("/verify-reset-token")
def verify_reset_token(body: token_schema.PasswordResetVerify, auth: Authenticator = Depends(get_authenticator)):
    auth.verify_reset_token(body.email, body.token)
    return {"success": True, "message": "Reset token is valid"}


@router.post("/reset-password")
def reset_password(body: token_schema.PasswordResetConfirm, auth: Authenticator = Depends(get_authenticator)):
    auth.reset_password(body.email, body.token, body.new_password)
    return {"success": True, "message": "Password has been reset successfully"}
