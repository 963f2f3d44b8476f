from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from notekeeper.services import Services
from notekeeper.storage.session_store import SessionUser


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_user(services: Services = Depends(get_services)) -> SessionUser:
    user = services.session.current_user()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in")
    return user
