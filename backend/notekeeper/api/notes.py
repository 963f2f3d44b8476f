from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from notekeeper.api.deps import get_current_user, get_services
from notekeeper.models.notes import NoteCreate, NoteOut, NoteUpdate, SortField, SortOrder
from notekeeper.services import Services
from notekeeper.storage.notes_store import Note, NoteUpdateResult
from notekeeper.storage.session_store import SessionUser

router = APIRouter(prefix="/notes", tags=["notes"])


def _out(note: Note) -> NoteOut:
    return NoteOut(**note.to_dict())


@router.post("", response_model=NoteOut, status_code=status.HTTP_201_CREATED)
async def create_note(
    payload: NoteCreate,
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> NoteOut:
    note = await services.notes.add_note(payload.title, payload.content, payload.category)
    if note is None:
        raise HTTPException(status_code=422, detail="Note content is required")
    return _out(note)


@router.get("", response_model=list[NoteOut])
def list_notes(
    q: str = "",
    category: Optional[str] = None,
    sort_by: SortField = "date_added",
    order: SortOrder = "desc",
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> list[NoteOut]:
    store = services.notes
    notes = store.sort_notes(sort_by, order, user_id=user.id)

    # filters keep the chosen order
    if q.strip():
        matched = {n.id for n in store.search_notes(q, user_id=user.id)}
        notes = [n for n in notes if n.id in matched]
    if category:
        in_category = {n.id for n in store.get_notes_by_category(category, user_id=user.id)}
        notes = [n for n in notes if n.id in in_category]
    return [_out(n) for n in notes]


@router.get("/{note_id}", response_model=NoteOut)
def get_note(
    note_id: str,
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> NoteOut:
    note = services.notes.get_note(note_id)
    if note is None or note.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return _out(note)


@router.put("/{note_id}", response_model=NoteOut)
async def update_note(
    note_id: str,
    payload: NoteUpdate,
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> NoteOut:
    existing = services.notes.get_note(note_id)
    if existing is None or existing.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")

    result = await services.notes.update_note(note_id, payload.title, payload.content, payload.category)
    if result is NoteUpdateResult.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    if result is NoteUpdateResult.INVALID:
        raise HTTPException(status_code=422, detail="Note content is required")
    if result is NoteUpdateResult.FAILED:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return _out(services.notes.get_note(note_id))


# idempotent: deleting an unknown id is still 204
@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: str,
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> None:
    existing = services.notes.get_note(note_id)
    if existing is not None and existing.user_id == user.id:
        await services.notes.delete_note(note_id)
    return None
