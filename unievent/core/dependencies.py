from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from unievent.core.database import get_db
from unievent.core.security import decode_access_token
from unievent.models.user import User, UserRole
from unievent.services.event_status_service import EventStatusService

bearer = HTTPBearer(auto_error=False)


def _not_authenticated_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    not_authenticated = _not_authenticated_exception()

    if not credentials:
        raise not_authenticated

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = int(payload["sub"])

        if payload.get("type") != "access":
            raise not_authenticated

    except (JWTError, KeyError, ValueError):
        raise not_authenticated

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise not_authenticated

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account has been deactivated",
        )

    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    # role is re-read from the DB row, not trusted from the token
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized as admin",
        )
    return user


def get_event_status_service(request: Request) -> EventStatusService:
    service = getattr(request.app.state, "event_status_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event status service is not initialised",
        )
    return service
