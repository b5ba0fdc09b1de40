"""Tests for room snapshots, room creation and reaction toggles."""

from unittest.mock import AsyncMock

import pytest

from app.config import get_settings
from app.schemas.chat import ChatEventKind, ParticipantSnapshot
from app.services.chat_rooms import ChatRooms
from app.services.errors import NotFound, PermissionDenied
from app.services.message_ingestion import MessageIngestion
from tests.factories import make_faculty, make_project

FACULTY = ParticipantSnapshot(id="f1", name="Dr. Rivera", role="FACULTY")
ALICE = ParticipantSnapshot(id="s1", name="Alice", role="USER")


@pytest.fixture
def chat_rooms(chat_store, publisher) -> ChatRooms:
    return ChatRooms(chat_store, publisher)


@pytest.fixture
async def message_id(chat_store, object_store, publisher):
    await chat_store.create_room("p1", "Protein Folding Lab", FACULTY)
    await chat_store.add_participant("p1", ALICE)
    ingestion = MessageIngestion(chat_store, object_store, publisher, get_settings())
    message = await ingestion.send("p1", "f1", "Welcome aboard")
    publisher.events.clear()
    return message.id


async def test_initialize_room_seeds_faculty_owner(db, chat_rooms, chat_store):
    faculty_user, faculty = await make_faculty(db)
    project = await make_project(db, faculty, positions=3)
    await db.commit()

    room = await chat_rooms.initialize_room(project, faculty_user)

    assert room.project_id == str(project.id)
    assert [p.id for p in room.participants] == [str(faculty_user.id)]
    assert room.unread_count_for(str(faculty_user.id)) == 0


async def test_initialize_room_failure_is_logged_not_raised(db, publisher):
    faculty_user, faculty = await make_faculty(db)
    project = await make_project(db, faculty)
    broken_store = AsyncMock()
    broken_store.create_room.side_effect = ConnectionError("mongo down")

    assert await ChatRooms(broken_store, publisher).initialize_room(project, faculty_user) is None


async def test_snapshot_carries_the_callers_unread_count(chat_rooms, message_id):
    alice_view = await chat_rooms.get_snapshot("p1", "s1")
    faculty_view = await chat_rooms.get_snapshot("p1", "f1")

    assert alice_view.unread_count == 1
    assert faculty_view.unread_count == 0
    assert [m.id for m in alice_view.messages] == [message_id]
    assert {p.id for p in alice_view.participants} == {"f1", "s1"}


async def test_snapshot_denied_to_non_participants(chat_rooms, message_id):
    with pytest.raises(PermissionDenied):
        await chat_rooms.get_snapshot("p1", "outsider")


async def test_snapshot_of_missing_room(chat_rooms):
    with pytest.raises(NotFound):
        await chat_rooms.get_snapshot("nope", "s1")


async def test_toggling_twice_restores_the_original_reactions(chat_rooms, message_id, chat_store, publisher):
    await chat_rooms.toggle_reaction("p1", message_id, "f1", "🎉")
    before = [r.model_dump() for r in chat_store.rooms["p1"].messages[0].reactions]

    added = await chat_rooms.toggle_reaction("p1", message_id, "s1", "👍")
    removed = await chat_rooms.toggle_reaction("p1", message_id, "s1", "👍")

    assert {(r.user_id, r.emoji) for r in added.reactions} == {("f1", "🎉"), ("s1", "👍")}
    assert [r.model_dump() for r in removed.reactions] == before
    events = publisher.of_kind(ChatEventKind.REACTION_UPDATED)
    assert len(events) == 3
    assert events[-1].payload["reactions"] == before


async def test_same_emoji_from_two_users_is_kept_separately(chat_rooms, message_id):
    await chat_rooms.toggle_reaction("p1", message_id, "f1", "👍")
    result = await chat_rooms.toggle_reaction("p1", message_id, "s1", "👍")

    assert len(result.reactions) == 2


async def test_reaction_requires_participation(chat_rooms, message_id):
    with pytest.raises(PermissionDenied):
        await chat_rooms.toggle_reaction("p1", message_id, "outsider", "👍")


async def test_reaction_on_unknown_message(chat_rooms, message_id):
    with pytest.raises(NotFound):
        await chat_rooms.toggle_reaction("p1", "missing", "s1", "👍")
