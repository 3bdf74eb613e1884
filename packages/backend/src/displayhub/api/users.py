"""Users API — the current user's profile, password and Spotify link.

Learn: Every write goes through UserService, which announces the change
on the event bus. Live displays of that user receive the new settings
and, when the location moved, their weather subscription follows.
Listing and reading other users is admin-only.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from displayhub.auth.dependencies import CurrentIdentity, get_current_user, require_admin
from displayhub.db.engine import get_db
from displayhub.runtime import Runtime, get_runtime
from displayhub.schemas.user import (
    PasswordChange,
    SpotifyCredentialWrite,
    UserRead,
    UserUpdate,
)
from displayhub.services.user_service import (
    PasswordPolicyError,
    UserNotFoundError,
    UserService,
)
from displayhub.upstream.models import Credential

router = APIRouter(prefix="/users")


def _service(
    db: AsyncSession = Depends(get_db), runtime: Runtime = Depends(get_runtime)
) -> UserService:
    return UserService(db, runtime.bus)


async def _load(svc: UserService, user_id: str):
    try:
        return await svc.get(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


@router.get("", response_model=list[UserRead], dependencies=[Depends(require_admin)])
async def list_users(svc: UserService = Depends(_service)):
    return [UserRead.from_model(u) for u in await svc.list_users()]


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_service),
):
    return UserRead.from_model(await _load(svc, identity.user_id))


@router.patch("/me", response_model=UserRead)
async def update_me(
    body: UserUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_service),
):
    await _load(svc, identity.user_id)
    changes = {}
    if "last_state" in body.model_fields_set:
        changes["last_state"] = body.last_state
    user = await svc.update_profile(
        identity.user_id,
        timezone=body.timezone,
        location=body.location,
        **changes,
    )
    return UserRead.from_model(user)


@router.put("/me/password", status_code=204)
async def change_password(
    body: PasswordChange,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_service),
):
    if body.password != body.password_confirmation:
        raise HTTPException(status_code=422, detail="Passwords do not match")
    await _load(svc, identity.user_id)
    try:
        await svc.change_password(identity.user_id, body.password)
    except PasswordPolicyError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.put("/me/spotify", response_model=UserRead)
async def set_spotify(
    body: SpotifyCredentialWrite,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_service),
):
    await _load(svc, identity.user_id)
    user = await svc.set_spotify_credential(
        identity.user_id, Credential(**body.model_dump())
    )
    return UserRead.from_model(user)


@router.delete("/me/spotify", response_model=UserRead)
async def clear_spotify(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_service),
):
    await _load(svc, identity.user_id)
    return UserRead.from_model(await svc.clear_spotify_credential(identity.user_id))


@router.get("/{user_id}", response_model=UserRead, dependencies=[Depends(require_admin)])
async def get_user(user_id: str, svc: UserService = Depends(_service)):
    return UserRead.from_model(await _load(svc, user_id))
