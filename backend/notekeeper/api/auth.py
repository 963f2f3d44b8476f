from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from notekeeper.api.deps import get_current_user, get_services
from notekeeper.models.auth import LoginRequest, ProfileUpdate, RegisterRequest, SessionUserOut
from notekeeper.services import Services
from notekeeper.storage.session_store import SessionUser

router = APIRouter(prefix="/auth", tags=["auth"])


def _current(services: Services) -> SessionUserOut:
    return SessionUserOut(**services.session.current_user().to_dict())


@router.post("/register", response_model=SessionUserOut, status_code=status.HTTP_201_CREATED)
async def register(req: RegisterRequest, services: Services = Depends(get_services)):
    if not await services.users.register(req.email, req.password, req.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User exists")
    return _current(services)


@router.post("/login", response_model=SessionUserOut)
async def login(req: LoginRequest, services: Services = Depends(get_services)):
    if not await services.users.login(req.email, req.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _current(services)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(services: Services = Depends(get_services)) -> None:
    await services.users.logout()
    return None


@router.get("/me", response_model=SessionUserOut)
def me(user: SessionUser = Depends(get_current_user)):
    return SessionUserOut(**user.to_dict())


@router.patch("/profile", response_model=SessionUserOut)
async def update_profile(
    req: ProfileUpdate,
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    if not await services.users.update_profile(req.email, req.password, req.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile update rejected")
    return _current(services)
