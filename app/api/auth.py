import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import get_current_admin, get_current_user
from app.models import User, get_db
from app.models.user import ROLE_ADMIN, ROLE_CUSTOMER
from app.services.audit import log_admin_action
from app.services.auth_tokens import (
    get_valid_refresh_token,
    issue_refresh_token,
    revoke_refresh_token,
    revoke_refresh_token_by_raw,
)

router = APIRouter()
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "admin@example.com", "password": "securepassword"}]},
        populate_by_name=True,
    )


class TokenResponse(CamelModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    token_type: str = "bearer"
    expires_in: int = Field(alias="expiresIn")
    refresh_expires_in: int = Field(alias="refreshExpiresIn")


class RefreshRequest(CamelModel):
    refresh_token: str = Field(alias="refreshToken")


class LogoutRequest(CamelModel):
    refresh_token: str = Field(alias="refreshToken")


class UserCreateRequest(CamelModel):
    email: EmailStr
    password: str
    display_name: str | None = Field(default=None, alias="displayName", max_length=255)
    role: str = ROLE_CUSTOMER

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in {ROLE_ADMIN, ROLE_CUSTOMER}:
            raise ValueError("Role must be admin or customer")
        return v


class MessageResponse(CamelModel):
    message: str


class MeResponse(CamelModel):
    id: int
    email: str
    display_name: str | None = Field(default=None, alias="displayName")
    role: str
    created_at: str = Field(alias="createdAt")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    to_encode = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _build_token_response(access_token: str, refresh_token: str) -> TokenResponse:
    return TokenResponse(
        accessToken=access_token,
        refreshToken=refresh_token,
        expiresIn=settings.JWT_EXPIRE_MINUTES * 60,
        refreshExpiresIn=settings.JWT_REFRESH_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _to_me_response(user: User) -> MeResponse:
    return MeResponse(
        id=user.id,
        email=user.email,
        displayName=user.display_name,
        role=user.role,
        createdAt=user.created_at.isoformat() if user.created_at else "",
    )


def _get_client_ip(request: Request) -> str | None:
    if not request.client:
        return None
    return request.client.host


def _get_user_agent(request: Request) -> str | None:
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        return None
    return user_agent[:512]


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get access/refresh tokens",
)
def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Login with email/password and return JWT access + opaque refresh token."""
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    access_token = create_access_token(user.id)
    refresh_token, _ = issue_refresh_token(
        db=db,
        user_id=user.id,
        expires_in_days=settings.JWT_REFRESH_EXPIRE_DAYS,
        ip=_get_client_ip(request),
        user_agent=_get_user_agent(request),
    )
    db.commit()

    return _build_token_response(access_token, refresh_token)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token pair",
)
def refresh_tokens(
    body: RefreshRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Rotate refresh token and issue fresh access token."""
    current = get_valid_refresh_token(db, body.refresh_token)
    if not current:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    user = db.query(User).filter(User.id == current.user_id).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    new_refresh, new_record = issue_refresh_token(
        db=db,
        user_id=user.id,
        expires_in_days=settings.JWT_REFRESH_EXPIRE_DAYS,
        ip=_get_client_ip(request),
        user_agent=_get_user_agent(request),
    )
    revoke_refresh_token(current, replaced_by_id=new_record.id)
    db.commit()

    access_token = create_access_token(user.id)
    return _build_token_response(access_token, new_refresh)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout by revoking refresh token",
)
def logout(
    body: LogoutRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Revoke refresh token. Always returns success message."""
    revoke_refresh_token_by_raw(db, body.refresh_token)
    db.commit()
    return MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current authenticated user profile",
)
def me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Return profile of the authenticated user."""
    return _to_me_response(current_user)


@router.post(
    "/users",
    response_model=MeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user (admin)",
)
def create_user(
    body: UserCreateRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Create a staff or customer account. Self-registration is not available."""
    if db.query(User).filter(User.email == body.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(
        email=body.email,
        display_name=body.display_name,
        hashed_password=get_password_hash(body.password),
        role=body.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log_admin_action(admin, "user.create", user_id=user.id, role=user.role)
    return _to_me_response(user)
