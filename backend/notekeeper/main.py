from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from notekeeper.api import auth, notes
from notekeeper.config import configure_logging, load_settings
from notekeeper.services import build_services
from notekeeper.utils.auth_hash import PasswordHasher


def create_app(data_dir: Optional[Path] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = load_settings()
        configure_logging(settings.log_level)
        services = build_services(
            data_dir=data_dir or settings.data_dir,
            hasher=PasswordHasher(settings.bcrypt_rounds),
        )
        await services.initialize()
        app.state.services = services
        yield

    app = FastAPI(title="Notekeeper API", lifespan=lifespan)
    app.include_router(auth.router)
    app.include_router(notes.router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
