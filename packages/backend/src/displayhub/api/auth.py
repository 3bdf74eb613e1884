"""Auth API — registration, login, logout.

Learn: Login returns the JWT in the body (for the CLI and scripts) and
also sets it as an HTTP-only cookie (for the display's browser). The
cookie and token live 24h, or 30 days with stay_logged_in.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from displayhub.auth.jwt import create_access_token, token_lifetime
from displayhub.config import settings
from displayhub.db.engine import get_db
from displayhub.runtime import Runtime, get_runtime
from displayhub.schemas.user import UserCreate, UserRead
from displayhub.services.user_service import (
    PasswordPolicyError,
    UserExistsError,
    UserService,
)

router = APIRouter(prefix="/auth")


class LoginRequest(BaseModel):
    username: str
    password: str
    stay_logged_in: bool = False


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


@router.post("/register", response_model=UserRead, status_code=201)
async def register(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    svc = UserService(db, runtime.bus)
    try:
        user = await svc.create_user(
            body.username, body.password, body.timezone, body.location
        )
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PasswordPolicyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return UserRead.from_model(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    lifetime = token_lifetime(body.stay_logged_in)
    token = create_access_token(str(user.id), user.name, lifetime)
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.environment != "development",
    )
    return TokenResponse(
        access_token=token,
        expires_in=int(lifetime.total_seconds()),
        user=UserRead.from_model(user),
    )


@router.post("/logout", status_code=204)
async def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name)
