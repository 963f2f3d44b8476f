from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from notekeeper.storage.kv_store import NOTES_KEY, KeyValueStore, StorageError
from notekeeper.storage.session_store import SessionManager
from notekeeper.utils.ids import new_id

logger = logging.getLogger(__name__)

CATEGORIES = ("Work", "Study", "Personal")
SORT_FIELDS = ("date_added", "date_edited")
SORT_ORDERS = ("asc", "desc")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@dataclass(frozen=True)
class Note:
    id: str
    content: str
    category: str
    date_added: datetime
    user_id: str
    title: Optional[str] = None
    date_edited: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id}
        if self.title is not None:
            out["title"] = self.title
        out["content"] = self.content
        out["category"] = self.category
        out["date_added"] = self.date_added.isoformat()
        if self.date_edited is not None:
            out["date_edited"] = self.date_edited.isoformat()
        out["user_id"] = self.user_id
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Note":
        edited = raw.get("date_edited")
        return cls(
            id=str(raw["id"]),
            title=_blank_to_none(raw.get("title")),
            content=str(raw["content"]),
            category=str(raw["category"]),
            date_added=datetime.fromisoformat(raw["date_added"]),
            date_edited=datetime.fromisoformat(edited) if edited else None,
            user_id=str(raw["user_id"]),
        )

    def search_text(self) -> str:
        return " ".join([self.title or "", self.content, self.category]).lower()


class NoteUpdateResult(enum.Enum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    FAILED = "failed"


def decode_notes(raw: str) -> list[Note]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("notes payload must be a list")
    return [Note.from_dict(item) for item in data]


def encode_notes(notes: Iterable[Note]) -> str:
    return json.dumps([n.to_dict() for n in notes], ensure_ascii=False)


class NotesStore:
    """The whole note collection, persisted as one JSON array.

    Every mutation re-reads the collection, changes it, writes it back in a
    single substrate write and only then swaps the in-memory copy. Mutations
    are serialized through one lock per store.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        session: SessionManager,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.kv = kv
        self.session = session
        self.clock = clock
        self.ready = asyncio.Event()
        self._notes: list[Note] = []
        self._lock = asyncio.Lock()

    @property
    def notes(self) -> tuple[Note, ...]:
        return tuple(self._notes)

    @property
    def is_loading(self) -> bool:
        return not self.ready.is_set()

    async def _read_notes(self) -> list[Note]:
        raw = await self.kv.get(NOTES_KEY)
        if raw is None:
            return []
        try:
            return decode_notes(raw)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring malformed notes collection: %s", exc)
            return []

    async def _save(self, notes: list[Note]) -> None:
        await self.kv.set(NOTES_KEY, encode_notes(notes))
        self._notes = notes

    async def load(self) -> None:
        try:
            self._notes = await self._read_notes()
            logger.info("Loaded %d note(s)", len(self._notes))
        except StorageError:
            logger.exception("Could not load notes")
        finally:
            self.ready.set()

    def get_note(self, note_id: str) -> Optional[Note]:
        for n in self._notes:
            if n.id == note_id:
                return n
        return None

    async def add_note(self, title: Optional[str], content: str, category: str) -> Optional[Note]:
        content = content.strip()
        if not content:
            return None
        user = self.session.current_user()
        if user is None:
            logger.warning("add_note called without a session")
            return None

        note = Note(
            id=new_id("note"),
            title=_blank_to_none(title),
            content=content,
            category=category.strip(),
            date_added=self.clock(),
            user_id=user.id,
        )
        async with self._lock:
            try:
                notes = await self._read_notes()
                await self._save(notes + [note])
            except StorageError:
                logger.exception("Could not add note")
                return None

        logger.info("Added note %s for user %s", note.id, user.id)
        return note

    async def update_note(
        self, note_id: str, title: Optional[str], content: str, category: str
    ) -> NoteUpdateResult:
        content = content.strip()
        if not content:
            return NoteUpdateResult.INVALID

        async with self._lock:
            try:
                notes = await self._read_notes()
                idx = next((i for i, n in enumerate(notes) if n.id == note_id), None)
                if idx is None:
                    logger.warning("update_note: no note with id %s", note_id)
                    return NoteUpdateResult.NOT_FOUND

                notes[idx] = replace(
                    notes[idx],
                    title=_blank_to_none(title),
                    content=content,
                    category=category.strip(),
                    date_edited=self.clock(),
                )
                await self._save(notes)
            except StorageError:
                logger.exception("Could not update note %s", note_id)
                return NoteUpdateResult.FAILED

        logger.info("Updated note %s", note_id)
        return NoteUpdateResult.UPDATED

    async def delete_note(self, note_id: str) -> bool:
        async with self._lock:
            try:
                notes = await self._read_notes()
                remaining = [n for n in notes if n.id != note_id]
                if len(remaining) == len(notes):
                    return False
                await self._save(remaining)
            except StorageError:
                logger.exception("Could not delete note %s", note_id)
                return False

        logger.info("Deleted note %s", note_id)
        return True

    def _owned(self, user_id: Optional[str]) -> list[Note]:
        if user_id is None:
            return list(self._notes)
        return [n for n in self._notes if n.user_id == user_id]

    def search_notes(self, query: str, user_id: Optional[str] = None) -> list[Note]:
        """AND of case-insensitive substrings over title, content and category.

        A blank query returns every note in collection order.
        """
        notes = self._owned(user_id)
        terms = query.lower().split()
        if not terms:
            return notes
        return [n for n in notes if all(t in n.search_text() for t in terms)]

    def sort_notes(self, sort_by: str, order: str, user_id: Optional[str] = None) -> list[Note]:
        """Return a sorted copy; the stored order is left alone.

        With ``date_edited`` each note falls back to its own ``date_added`` when
        it was never edited. Equal keys keep collection order.
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"Invalid sort_by: {sort_by!r}")
        if order not in SORT_ORDERS:
            raise ValueError(f"Invalid order: {order!r}")

        def key(n: Note) -> datetime:
            if sort_by == "date_edited" and n.date_edited is not None:
                return n.date_edited
            return n.date_added

        return sorted(self._owned(user_id), key=key, reverse=(order == "desc"))

    def get_notes_by_category(self, category: str, user_id: Optional[str] = None) -> list[Note]:
        wanted = category.strip().lower()
        return [n for n in self._owned(user_id) if n.category.lower() == wanted]
