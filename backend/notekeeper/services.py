from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from notekeeper.storage.kv_store import FileKeyValueStore, KeyValueStore
from notekeeper.storage.notes_store import NotesStore
from notekeeper.storage.session_store import SessionManager
from notekeeper.storage.users_store import UsersStore
from notekeeper.utils.auth_hash import PasswordHasher


@dataclass
class Services:
    """All stores for one process, wired to a single substrate."""

    kv: KeyValueStore
    session: SessionManager
    users: UsersStore
    notes: NotesStore

    @property
    def ready(self) -> bool:
        return self.session.ready.is_set() and self.notes.ready.is_set()

    async def initialize(self) -> None:
        await asyncio.gather(self.session.initialize(), self.notes.load())


def build_services(
    kv: Optional[KeyValueStore] = None,
    data_dir: Optional[Path] = None,
    hasher: Optional[PasswordHasher] = None,
) -> Services:
    if kv is None:
        if data_dir is None:
            raise ValueError("Either kv or data_dir is required")
        kv = FileKeyValueStore(data_dir)
    session = SessionManager(kv)
    return Services(
        kv=kv,
        session=session,
        users=UsersStore(kv, session, hasher=hasher),
        notes=NotesStore(kv, session),
    )
