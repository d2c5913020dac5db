# staff_directory/core/security.py
# Handles password hashing, JWTs, and the actor-resolving dependencies.
import hashlib
import secrets
from datetime import timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, jwt
from passlib.context import CryptContext

from staff_directory.db import models, session
from staff_directory.core.clock import utcnow
from staff_directory.core.config import settings
from staff_directory.core.exceptions import AuthorizationError
from staff_directory.core.roles import MANAGER_ROLES, Role
from staff_directory.schemas import token as token_schema

# --- Password Hashing ---
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
def verify_password(plain: str, hashed: str) -> bool: return pwd_context.verify(plain, hashed)
def get_password_hash(pwd: str) -> str: return pwd_context.hash(pwd)


class PasswordHasher:
    """The hash/verify capability the services are given."""

    def hash(self, plain: str) -> str:
        return get_password_hash(plain)

    def verify(self, plain: str, digest: str) -> bool:
        return verify_password(plain, digest)


password_hasher = PasswordHasher()


# --- One-time codes ---
def generate_numeric_code(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


# --- JWT Creation ---
def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_user_token(user: models.User) -> str:
    return create_access_token({"sub": str(user.id), "id_card": user.id_card, "role": user.role})


# --- Role-Checking Dependencies ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(session.get_db)) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        subject = payload.get("sub")
        if subject is None:
            raise credentials_exception
        token_data = token_schema.TokenData(user_id=int(subject))
    except (JWTError, ValueError):
        raise credentials_exception

    user = db.get(models.User, token_data.user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user

def get_current_admin_user(current_user: models.User = Depends(get_current_user)):
    if current_user.role not in MANAGER_ROLES:
        raise AuthorizationError("Admin access required")
    return current_user

def get_current_super_admin(current_user: models.User = Depends(get_current_user)):
    if current_user.role != Role.SUPER_ADMIN.value:
        raise AuthorizationError("Requires SUPER_ADMIN role")
    return current_user
