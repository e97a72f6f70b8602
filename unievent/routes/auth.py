from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from unievent.controllers.auth_controller import get_me, login
from unievent.core.database import get_db
from unievent.core.dependencies import get_current_user
from unievent.models.user import User
from unievent.schemas.auth import LoginRequest, LoginResponse, MeResponse

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="""
Authenticate with email + password.
Returns a JWT Bearer token to use in all other requests.

**How to use the token:**
Add to request headers: `Authorization: Bearer <your_token>`
    """,
)
async def user_login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    return await login(payload, db)


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get Current User",
    description="Returns the authenticated user's profile. Requires Bearer token in header.",
)
async def me(
    current_user: User = Depends(get_current_user),
) -> MeResponse:
    return await get_me(current_user)
