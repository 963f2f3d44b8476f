import json
from datetime import datetime, timezone

import pytest

from notekeeper.services import build_services
from notekeeper.storage.kv_store import NOTES_KEY, SESSION_KEY, MemoryKeyValueStore
from notekeeper.storage.notes_store import Note, NotesStore, NoteUpdateResult, decode_notes, encode_notes
from notekeeper.storage.session_store import SessionManager


async def _login(services, email="owner@example.com"):
    await services.users.register(email, "pw", email.split("@")[0])
    return services.session.current_user()


def _persisted(kv):
    return decode_notes(kv.data[NOTES_KEY])


@pytest.mark.anyio
async def test_load_without_key_is_empty(notes):
    assert notes.is_loading
    await notes.load()
    assert notes.notes == ()
    assert notes.ready.is_set()


@pytest.mark.anyio
@pytest.mark.parametrize("raw", ["nope", "{}", '[{"id": "n1"}]', '[{"id": "n1", "content": "c", "category": "Work", "date_added": "yesterday", "user_id": "u"}]'])
async def test_load_malformed_fails_soft(raw):
    kv = MemoryKeyValueStore({NOTES_KEY: raw})
    store = NotesStore(kv, SessionManager(kv))
    await store.load()
    assert store.notes == ()
    assert store.ready.is_set()


@pytest.mark.anyio
async def test_add_note_trims_and_stamps(services, notes):
    user = await _login(services)
    note = await notes.add_note(None, "  hello  ", "work")

    assert note.title is None
    assert note.content == "hello"
    assert note.category == "work"
    assert note.date_added is not None
    assert note.date_edited is None
    assert note.user_id == user.id
    assert note.id.startswith("note_")
    assert "title" not in note.to_dict()
    assert "date_edited" not in note.to_dict()


@pytest.mark.anyio
async def test_blank_title_stored_as_absent(services, notes, kv):
    await _login(services)
    await notes.add_note("   ", "body", "Study")
    assert "title" not in json.loads(kv.data[NOTES_KEY])[0]


@pytest.mark.anyio
async def test_add_note_rejects_blank_content(services, notes, kv):
    await _login(services)
    assert await notes.add_note("t", "   ", "Work") is None
    assert NOTES_KEY not in kv.data


@pytest.mark.anyio
async def test_add_note_requires_session(notes, kv):
    assert await notes.add_note("t", "content", "Work") is None
    assert notes.notes == ()
    assert NOTES_KEY not in kv.data


@pytest.mark.anyio
async def test_memory_matches_persisted_after_each_mutation(services, notes, kv):
    await _login(services)
    a = await notes.add_note("a", "first", "Work")
    assert list(notes.notes) == _persisted(kv)
    b = await notes.add_note(None, "second", "Study")
    assert list(notes.notes) == _persisted(kv)
    assert await notes.update_note(a.id, "A", "first!", "Personal") is NoteUpdateResult.UPDATED
    assert list(notes.notes) == _persisted(kv)
    assert await notes.delete_note(b.id) is True
    assert list(notes.notes) == _persisted(kv)
    assert [n.id for n in notes.notes] == [a.id]


@pytest.mark.anyio
async def test_update_sets_date_edited_each_time(services, notes):
    await _login(services)
    note = await notes.add_note(None, "c", "Work")

    assert await notes.update_note(note.id, "T", "C", "Study") is NoteUpdateResult.UPDATED
    first = notes.get_note(note.id)
    assert await notes.update_note(note.id, "T", "C", "Study") is NoteUpdateResult.UPDATED
    second = notes.get_note(note.id)

    assert second.date_edited > first.date_edited
    for n in (first, second):
        assert (n.id, n.user_id, n.date_added) == (note.id, note.user_id, note.date_added)
        assert (n.title, n.content, n.category) == ("T", "C", "Study")


@pytest.mark.anyio
async def test_update_unknown_id_and_invalid_content(services, notes, kv):
    await _login(services)
    note = await notes.add_note(None, "keep", "Work")
    snapshot = kv.data[NOTES_KEY]

    assert await notes.update_note("note_missing", "x", "y", "Work") is NoteUpdateResult.NOT_FOUND
    assert await notes.update_note(note.id, "x", "  ", "Work") is NoteUpdateResult.INVALID
    assert kv.data[NOTES_KEY] == snapshot
    assert notes.get_note(note.id).content == "keep"


@pytest.mark.anyio
async def test_delete_unknown_id_is_noop(services, notes, kv):
    await _login(services)
    await notes.add_note(None, "one", "Work")
    before = list(notes.notes)
    snapshot = kv.data[NOTES_KEY]

    assert await notes.delete_note("note_missing") is False
    assert list(notes.notes) == before
    assert kv.data[NOTES_KEY] == snapshot


@pytest.mark.anyio
async def test_search_is_and_of_substrings(services, notes):
    await _login(services)
    hit = await notes.add_note(None, "My study notes are here", "Personal")
    await notes.add_note(None, "My work notes", "Work")

    assert [n.id for n in notes.search_notes("studY notes")] == [hit.id]
    # substring, not word boundary: "tud" hits "study"
    assert [n.id for n in notes.search_notes("tud")] == [hit.id]
    # category and title take part in the match
    assert len(notes.search_notes("work")) == 1
    assert len(notes.search_notes("personal here")) == 1


@pytest.mark.anyio
async def test_blank_search_returns_all_in_collection_order(services, notes):
    await _login(services)
    ids = [(await notes.add_note(None, f"n{i}", "Work")).id for i in range(3)]
    assert [n.id for n in notes.search_notes("   ")] == ids
    assert [n.id for n in notes.search_notes("")] == ids


@pytest.mark.anyio
async def test_sort_by_date_added(services, notes):
    await _login(services)
    t1 = await notes.add_note(None, "one", "Work")
    t2 = await notes.add_note(None, "two", "Work")
    t3 = await notes.add_note(None, "three", "Work")

    assert [n.id for n in notes.sort_notes("date_added", "asc")] == [t1.id, t2.id, t3.id]
    assert [n.id for n in notes.sort_notes("date_added", "desc")] == [t3.id, t2.id, t1.id]
    # stored order untouched
    assert [n.id for n in notes.notes] == [t1.id, t2.id, t3.id]


@pytest.mark.anyio
async def test_sort_by_date_edited_falls_back_per_note(services, notes):
    await _login(services)
    a = await notes.add_note(None, "a", "Work")  # t1
    b = await notes.add_note(None, "b", "Work")  # t2
    c = await notes.add_note(None, "c", "Work")  # t3
    await notes.update_note(a.id, None, "a2", "Work")  # edited at t4

    assert [n.id for n in notes.sort_notes("date_edited", "asc")] == [b.id, c.id, a.id]
    assert [n.id for n in notes.sort_notes("date_edited", "desc")] == [a.id, c.id, b.id]
    # date_added ignores edits
    assert [n.id for n in notes.sort_notes("date_added", "asc")] == [a.id, b.id, c.id]


@pytest.mark.anyio
async def test_sort_is_stable_for_equal_keys(services, kv):
    await _login(services)
    same_instant = datetime(2024, 5, 1, tzinfo=timezone.utc)
    store = NotesStore(kv, services.session, clock=lambda: same_instant)
    ids = [(await store.add_note(None, f"n{i}", "Work")).id for i in range(3)]

    assert [n.id for n in store.sort_notes("date_added", "asc")] == ids
    assert [n.id for n in store.sort_notes("date_added", "desc")] == ids


def test_sort_rejects_unknown_fields(notes):
    with pytest.raises(ValueError):
        notes.sort_notes("title", "asc")
    with pytest.raises(ValueError):
        notes.sort_notes("date_added", "sideways")


@pytest.mark.anyio
async def test_category_filter_is_case_insensitive_exact(services, notes):
    await _login(services)
    s1 = await notes.add_note(None, "x", "Study")
    s2 = await notes.add_note(None, "y", "study")
    await notes.add_note(None, "z", "Studying")

    assert [n.id for n in notes.get_notes_by_category("STUDY")] == [s1.id, s2.id]
    assert notes.get_notes_by_category("Work") == []


@pytest.mark.anyio
async def test_reads_can_be_scoped_to_owner(services, notes):
    alice = await _login(services, "alice@example.com")
    a = await notes.add_note(None, "shared words", "Work")
    bob = await _login(services, "bob@example.com")
    b = await notes.add_note(None, "shared words", "Work")

    assert len(notes.search_notes("shared")) == 2
    assert [n.id for n in notes.search_notes("shared", user_id=alice.id)] == [a.id]
    assert [n.id for n in notes.sort_notes("date_added", "asc", user_id=bob.id)] == [b.id]
    assert [n.id for n in notes.get_notes_by_category("work", user_id=bob.id)] == [b.id]


@pytest.mark.anyio
async def test_roundtrip_through_substrate(services, notes, kv):
    await _login(services)
    a = await notes.add_note("Title", "body", "Work")
    await notes.add_note(None, "other", "Personal")
    await notes.update_note(a.id, "Title 2", "body 2", "Study")

    reloaded = NotesStore(kv, services.session)
    await reloaded.load()
    assert reloaded.notes == notes.notes


@pytest.mark.anyio
async def test_storage_failure_leaves_memory_untouched(failing_kv, hasher):
    existing = Note(
        id="note_1",
        content="original",
        category="Work",
        date_added=datetime(2024, 1, 1, tzinfo=timezone.utc),
        user_id="user_1",
    )
    # reads work on this substrate, writes raise
    failing_kv.data[SESSION_KEY] = json.dumps({"id": "user_1", "email": "a@example.com", "username": "a"})
    failing_kv.data[NOTES_KEY] = encode_notes([existing])
    services = build_services(kv=failing_kv, hasher=hasher)
    await services.initialize()

    assert await services.notes.add_note(None, "content", "Work") is None
    assert await services.notes.update_note("note_1", None, "changed", "Work") is NoteUpdateResult.FAILED
    assert await services.notes.delete_note("note_1") is False
    assert services.notes.notes == (existing,)
