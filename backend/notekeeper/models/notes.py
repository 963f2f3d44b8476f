from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from notekeeper.storage.notes_store import CATEGORIES


class NoteCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    content: str = Field(min_length=1, max_length=50_000)
    category: str = Field(default=CATEGORIES[0], max_length=64)


class NoteUpdate(NoteCreate):
    pass


class NoteOut(BaseModel):
    id: str
    title: Optional[str] = None
    content: str
    category: str
    date_added: datetime
    date_edited: Optional[datetime] = None
    user_id: str


SortField = Literal["date_added", "date_edited"]
SortOrder = Literal["asc", "desc"]
