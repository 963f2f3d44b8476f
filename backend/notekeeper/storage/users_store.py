from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

from notekeeper.storage.kv_store import USERS_KEY, KeyValueStore, StorageError
from notekeeper.storage.session_store import SessionManager, SessionUser
from notekeeper.utils.auth_hash import PasswordHasher
from notekeeper.utils.ids import new_id

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class CredentialRecord:
    id: str
    email: str
    username: str
    password_hash: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CredentialRecord":
        return cls(
            id=str(raw["id"]),
            email=str(raw["email"]),
            username=str(raw["username"]),
            password_hash=str(raw["password_hash"]),
            created_at=str(raw["created_at"]),
        )

    def session_user(self) -> SessionUser:
        return SessionUser(id=self.id, email=self.email, username=self.username)


class UsersStore:
    """Credential records keyed by normalized email, stored as one JSON object.

    Bad credentials, duplicate emails and substrate failures all come back as
    ``False``; nothing here raises to the caller for those.
    """

    def __init__(self, kv: KeyValueStore, session: SessionManager, hasher: Optional[PasswordHasher] = None):
        self.kv = kv
        self.session = session
        self.hasher = hasher or PasswordHasher()
        self._lock = asyncio.Lock()

    async def _read_users(self) -> Optional[dict[str, CredentialRecord]]:
        """Credential map from the substrate; ``None`` when the stored map is malformed."""
        raw = await self.kv.get(USERS_KEY)
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("users payload must be an object")
            return {email: CredentialRecord.from_dict(rec) for email, rec in data.items()}
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Malformed credential map, refusing writes until repaired: %s", exc)
            return None

    async def _write_users(self, users: dict[str, CredentialRecord]) -> None:
        payload = {email: rec.to_dict() for email, rec in users.items()}
        await self.kv.set(USERS_KEY, json.dumps(payload, ensure_ascii=False))

    async def register(self, email: str, password: str, username: str) -> bool:
        key = normalize_email(email)
        async with self._lock:
            try:
                if not key:
                    return False
                users = await self._read_users()
                if users is None:
                    return False
                if key in users:
                    logger.warning("Registration refused, email already in use: %s", key)
                    return False

                rec = CredentialRecord(
                    id=new_id("user"),
                    email=key,
                    username=username.strip(),
                    password_hash=self.hasher.hash_password(password),
                    created_at=datetime.now(timezone.utc).isoformat(),
                )
                users[key] = rec
                await self._write_users(users)
                await self.session.establish(rec.session_user())
            except StorageError:
                logger.exception("Registration failed for %s", key)
                return False

        logger.info("Registered user %s (%s)", rec.id, key)
        return True

    async def login(self, email: str, password: str) -> bool:
        key = normalize_email(email)
        try:
            users = await self._read_users() or {}
            rec = users.get(key)
            if rec is None or not self.hasher.verify_password(password, rec.password_hash):
                logger.warning("Login failed: invalid credentials for %s", key)
                return False
            await self.session.establish(rec.session_user())
        except StorageError:
            logger.exception("Login failed for %s", key)
            return False

        logger.info("User %s logged in", rec.id)
        return True

    async def logout(self) -> None:
        try:
            await self.session.clear()
        except StorageError:
            logger.exception("Could not remove cached session")
        logger.info("Logged out")

    async def update_profile(
        self,
        email: Optional[str] = None,
        password: Optional[str] = None,
        username: Optional[str] = None,
    ) -> bool:
        current = self.session.current_user()
        if current is None:
            return False

        async with self._lock:
            try:
                users = await self._read_users()
                if users is None:
                    return False
                rec = users.get(current.email)
                if rec is None:
                    logger.warning("No credential record for session email %s", current.email)
                    return False

                # blank values count as not given
                new_email = normalize_email(email) if email else ""
                new_username = username.strip() if username else ""

                if new_email and new_email != current.email:
                    if new_email in users:
                        logger.warning("Profile update refused, email already in use: %s", new_email)
                        return False
                    del users[current.email]
                    rec = replace(rec, email=new_email)

                if password:
                    rec = replace(rec, password_hash=self.hasher.hash_password(password))
                if new_username:
                    rec = replace(rec, username=new_username)

                users[rec.email] = rec
                await self._write_users(users)
                await self.session.establish(rec.session_user())
            except StorageError:
                logger.exception("Profile update failed for %s", current.email)
                return False

        logger.info("Updated profile for user %s", rec.id)
        return True
