"""Authentication endpoints: registration, login, tokens and password flows."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal
from uuid import UUID

import bcrypt
import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from flowops.api.v1.common import APISchema, UserInfo, ok
from flowops.config import get_settings
from flowops.db.base import utcnow
from flowops.db.session import get_db_session
from flowops.exceptions import Conflict, Unauthenticated, ValidationFailed
from flowops.middleware.rate_limit import auth_limiter, password_reset_limiter
from flowops.models.user import User

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


class RegisterRequest(APISchema):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["project_manager", "member"] = "member"


class LoginRequest(APISchema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(APISchema):
    email: EmailStr


class ResetPasswordRequest(APISchema):
    password: str = Field(..., min_length=6)


class RefreshTokenRequest(APISchema):
    refresh_token: str = Field(..., min_length=1)


class UpdatePasswordRequest(APISchema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UpdateProfileRequest(APISchema):
    name: str | None = Field(None, min_length=2, max_length=50)
    email: EmailStr | None = None


def _hash_password(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# bcrypt is CPU bound; keep it off the event loop
async def hash_password(password: str) -> str:
    return await run_in_threadpool(_hash_password, password, get_settings().bcrypt_rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(_check_password, password, password_hash)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _encode(user_id: UUID, token_type: str, expire: datetime) -> str:
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": token_type,
        # Unique per token so a refresh issued in the same second still differs
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(user_id: UUID, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    return _encode(user_id, "access", expire)


def create_refresh_token(user_id: UUID) -> str:
    """Create a JWT refresh token."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_token_expire_days)
    return _encode(user_id, "refresh", expire)


def decode_token(token: str, expected_type: str = "access") -> UUID:
    """Return the user id carried by a valid token of the expected type."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type") != expected_type:
            raise Unauthenticated("Invalid token type")
        return UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise Unauthenticated("Not authorized to access this route") from None


async def authenticate_token(db: AsyncSession, token: str) -> User:
    """Resolve an access token to an active user."""
    user_id = decode_token(token, "access")
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthenticated("Not authorized to access this route")
    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise Unauthenticated("Not authorized to access this route")
    return await authenticate_token(db, credentials.credentials)


CurrentUser = Annotated[User, Depends(get_current_user)]


async def _token_response(db: AsyncSession, user: User) -> dict:
    token = create_access_token(user.id)
    refresh = create_refresh_token(user.id)
    user.refresh_token = refresh
    await db.commit()
    return {
        "success": True,
        "token": token,
        "refreshToken": refresh,
        "user": {
            "id": str(user.id),
            "name": user.name,
            "email": user.email,
            "role": user.role,
        },
    }


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_limiter)],
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Create an account and sign it in."""
    email = body.email.lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise Conflict("User already exists with this email")

    user = User(
        name=body.name.strip(),
        email=email,
        password_hash=await hash_password(body.password),
        role=body.role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("User already exists with this email") from None

    logger.info("User registered", user_id=str(user.id))
    return await _token_response(db, user)


@router.post("/login", dependencies=[Depends(auth_limiter)])
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not await verify_password(body.password, user.password_hash):
        logger.info("Login failed", email=body.email)
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")

    user.last_login_at = utcnow()
    logger.info("User logged in", user_id=str(user.id))
    return await _token_response(db, user)


@router.get("/me")
async def get_me(current_user: CurrentUser) -> dict:
    return ok(UserInfo.model_validate(current_user))


@router.post("/forgot-password", dependencies=[Depends(password_reset_limiter)])
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Issue a password reset token without revealing whether the email exists."""
    response = ok(message="If an account with that email exists, a password reset link has been sent.")

    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return response

    reset_token = secrets.token_hex(32)
    user.reset_password_token = hash_reset_token(reset_token)
    user.reset_password_expire = utcnow() + timedelta(minutes=settings.password_reset_expire_minutes)
    await db.commit()

    logger.info("Password reset requested", user_id=str(user.id))
    # No mail transport; the token is only handed back outside production-like environments
    if settings.is_development:
        response["resetToken"] = reset_token
        response["resetUrl"] = f"{request.base_url}reset-password/{reset_token}"
    return response


@router.put("/reset-password/{token}")
@router.post("/reset-password/{token}")
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    result = await db.execute(
        select(User).where(
            User.reset_password_token == hash_reset_token(token),
            User.reset_password_expire > utcnow(),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise ValidationFailed("Invalid or expired reset token")

    user.password_hash = await hash_password(body.password)
    user.reset_password_token = None
    user.reset_password_expire = None

    logger.info("Password reset", user_id=str(user.id))
    return await _token_response(db, user)


@router.post("/refresh-token")
async def refresh_token(
    body: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Exchange the stored refresh token for a new access token."""
    try:
        user_id = decode_token(body.refresh_token, "refresh")
    except Unauthenticated:
        raise Unauthenticated("Invalid or expired refresh token") from None

    user = await db.get(User, user_id)
    if user is None or not user.is_active or user.refresh_token != body.refresh_token:
        raise Unauthenticated("Invalid refresh token")

    return ok(token=create_access_token(user.id))


@router.put("/update-password")
async def update_password(
    body: UpdatePasswordRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    if not await verify_password(body.current_password, current_user.password_hash):
        raise Unauthenticated("Current password is incorrect")

    current_user.password_hash = await hash_password(body.new_password)
    logger.info("Password updated", user_id=str(current_user.id))
    return await _token_response(db, current_user)


@router.put("/update-profile")
async def update_profile(
    body: UpdateProfileRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    if body.name is not None:
        current_user.name = body.name.strip()
    if body.email is not None:
        email = body.email.lower()
        if email != current_user.email:
            taken = await db.execute(select(User.id).where(User.email == email))
            if taken.first() is not None:
                raise Conflict("Email is already in use")
            current_user.email = email

    try:
        await db.commit()
    except IntegrityError:
        raise Conflict("Email is already in use") from None
    return ok(UserInfo.model_validate(current_user))


@router.post("/logout")
async def logout(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    current_user.refresh_token = None
    await db.commit()
    logger.info("User logged out", user_id=str(current_user.id))
    return ok(message="Logged out successfully")
