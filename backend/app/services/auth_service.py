"""
Accounts and sessions: registration, login and the platform role.

Roles are not user-editable. An account is an admin when its email is
listed in ADMIN_EMAILS; the list is consulted at registration and again
at every login, so adding an address promotes an existing account on its
next sign-in.
"""

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from app.models.enums import UserRole
from app.models.user import User
from app.schemas.user import UserCreate, UserLogin, Token
from app.core.config import get_settings
from app.core.exceptions import Conflict, Forbidden
from app.core.security import hash_password, verify_password, create_access_token
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_admin_email(email: str) -> bool:
    return normalize_email(email) in {normalize_email(e) for e in settings.ADMIN_EMAILS}


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """Raises Conflict when the email or the username is taken."""
    email = normalize_email(user_data.email)
    result = await db.execute(
        select(User.email, User.username).where(
            or_(User.email == email, User.username == user_data.username)
        )
    )
    taken = result.first()
    if taken is not None:
        field = "email" if taken.email == email else "username"
        logger.warning("registration_failed", reason=f"{field}_exists", username=user_data.username)
        raise Conflict("Email already registered" if field == "email" else "Username already taken")

    role = UserRole.ADMIN if is_admin_email(email) else UserRole.USER
    user = User(
        email=email,
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        role=role.value,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, role=user.role)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> Token:
    result = await db.execute(select(User).where(User.email == normalize_email(login_data.email)))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        logger.warning("login_rejected", user_id=user.id, reason="deactivated")
        raise Forbidden("Account is deactivated")

    if not user.is_admin and is_admin_email(user.email):
        user.role = UserRole.ADMIN.value
        await db.flush()
        logger.info("user_promoted", user_id=user.id, role=user.role)

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id)
    return Token(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        role=user.role,
    )
