from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unievent.core.config import settings
from unievent.core.security import create_access_token, verify_password
from unievent.models.user import User
from unievent.schemas.auth import LoginRequest, LoginResponse, MeResponse, UserInfo


async def login(payload: LoginRequest, db: AsyncSession) -> LoginResponse:
    """
    Login — all business logic lives here, not in the route.

    1. Always runs verify_password even when the user is not found
       → no timing difference that reveals whether an email exists
    2. Same error for wrong email AND wrong password
    3. is_active checked AFTER the password check
    4. last_login_at updated on success
    """
    result = await db.execute(
        select(User).where(User.email == payload.email)
    )
    user = result.scalar_one_or_none()

    # verify_password runs a dummy bcrypt check when the hash is missing
    password_ok = verify_password(
        payload.password,
        user.password_hash if user else None,
    )

    if not user or not password_ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated. Contact support.",
        )

    user.last_login_at = datetime.now(timezone.utc)
    db.add(user)
    await db.flush()

    token = create_access_token(user.id, user.email, user.role)

    return LoginResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserInfo(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
        ),
    )


async def get_me(user: User) -> MeResponse:
    """Returns current profile. No DB call needed — user already loaded by dependency."""
    return MeResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )
