from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from notekeeper.storage.kv_store import SESSION_KEY, KeyValueStore, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    username: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> "SessionUser":
        if not isinstance(raw, dict):
            raise ValueError("Session payload must be an object")
        values = {k: raw[k] for k in ("id", "email", "username")}
        if not all(isinstance(v, str) for v in values.values()):
            raise ValueError("Session fields must be strings")
        return cls(**values)


class SessionManager:
    """Who is logged in, cached under a single substrate key.

    A restored session is trusted as-is: it is never re-checked against the
    credential store.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self.ready = asyncio.Event()
        self._user: Optional[SessionUser] = None

    @property
    def is_loading(self) -> bool:
        return not self.ready.is_set()

    def current_user(self) -> Optional[SessionUser]:
        return self._user

    async def initialize(self) -> None:
        if self.ready.is_set():
            return
        try:
            raw = await self.kv.get(SESSION_KEY)
            if raw is not None:
                self._user = SessionUser.from_dict(json.loads(raw))
                logger.info("Restored session for %s", self._user.email)
        except (ValueError, KeyError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("Ignoring malformed cached session: %s", exc)
        except StorageError:
            logger.exception("Could not read cached session")
        finally:
            self.ready.set()

    async def establish(self, user: SessionUser) -> None:
        """Cache ``user`` as the current session (raises StorageError)."""
        await self.kv.set(SESSION_KEY, json.dumps(user.to_dict(), ensure_ascii=False))
        self._user = user

    async def clear(self) -> None:
        self._user = None
        await self.kv.remove(SESSION_KEY)
