"""Tests for mirroring membership changes into chat rooms."""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete

from app.db.models import ApplicationStatus, ProjectParticipant, User
from app.schemas.chat import ChatEventKind, Message, ParticipantSnapshot
from app.services.capacity_ledger import RosterAction, RosterChange, apply_decision
from app.services.roster_sync import RosterSynchronizer, participant_snapshot
from tests.factories import build_world, make_faculty, make_project, make_user


async def seed_room(db, chat_store, messages: int = 0, member: bool = True, room: bool = True):
    """Project with a faculty owner and Student A, who holds a membership row when member is set."""
    faculty_user, faculty = await make_faculty(db)
    project = await make_project(db, faculty, positions=3)
    student = await make_user(db, name="Student A")
    if member:
        db.add(ProjectParticipant(project_id=project.id, user_id=student.id))
    await db.commit()

    if room:
        pid = str(project.id)
        sender = participant_snapshot(faculty_user)
        await chat_store.create_room(pid, project.title, sender)
        now = datetime.now(timezone.utc)
        for i in range(messages):
            await chat_store.append_message(
                pid,
                Message(id=f"m{i}", sender=sender, content=f"hello {i}", created_at=now, updated_at=now),
            )
    return project.id, faculty_user, student


async def drop_membership(db, project_id, user_id):
    await db.execute(
        delete(ProjectParticipant).where(
            ProjectParticipant.project_id == project_id,
            ProjectParticipant.user_id == user_id,
        )
    )
    await db.commit()


async def test_add_starts_newcomer_at_current_message_count(db, chat_store, publisher, roster_sync):
    project_id, faculty_user, student = await seed_room(db, chat_store, messages=3)

    assert await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD)) is True

    room = chat_store.rooms[str(project_id)]
    assert room.participant(str(student.id)).name == "Student A"
    assert room.unread_count_for(str(student.id)) == 3
    [event] = publisher.of_kind(ChatEventKind.PARTICIPANT_ADDED)
    assert event.payload["participant"]["id"] == str(student.id)
    assert len(event.payload["participants"]) == 2
    assert event.payload["unread_counts"] == [
        {"user_id": str(faculty_user.id), "count": 0},
        {"user_id": str(student.id), "count": 3},
    ]


async def test_add_is_idempotent(db, chat_store, publisher, roster_sync):
    project_id, _, student = await seed_room(db, chat_store)

    await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD))
    await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD))

    room = chat_store.rooms[str(project_id)]
    assert [p.id for p in room.participants].count(str(student.id)) == 1
    assert [u.user_id for u in room.unread_counts].count(str(student.id)) == 1
    assert len(publisher.of_kind(ChatEventKind.PARTICIPANT_ADDED)) == 1


async def test_remove_pulls_participant_and_counter_but_keeps_messages(db, chat_store, publisher, roster_sync):
    project_id, faculty_user, student = await seed_room(db, chat_store, messages=2)
    await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD))
    await drop_membership(db, project_id, student.id)

    await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.REMOVE))
    await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.REMOVE))

    room = chat_store.rooms[str(project_id)]
    assert room.participant(str(student.id)) is None
    assert all(u.user_id != str(student.id) for u in room.unread_counts)
    assert len(room.messages) == 2
    [event] = publisher.of_kind(ChatEventKind.PARTICIPANT_REMOVED)
    assert event.payload["user_id"] == str(student.id)
    assert [p["id"] for p in event.payload["participants"]] == [str(faculty_user.id)]
    assert event.payload["unread_counts"] == [{"user_id": str(faculty_user.id), "count": 0}]


async def test_late_add_after_rejection_leaves_student_out(db, chat_store, session_factory, publisher):
    """Accept then reject while the add is still retrying: the student must end up outside the room."""
    world = await build_world(db, positions=1, students=1)
    pid = str(world.project_id)
    faculty_user = await db.get(User, world.faculty_user_id)
    await chat_store.create_room(pid, "Protein Folding Lab", participant_snapshot(faculty_user))
    sync = RosterSynchronizer(session_factory, chat_store, publisher, max_attempts=3, base_delay=0.01)

    accepted = await apply_decision(db, world.application_ids[0], ApplicationStatus.ACCEPTED, world.owner)
    rejected = await apply_decision(db, world.application_ids[0], ApplicationStatus.REJECTED, world.owner)
    chat_store.roster_failures = 1
    sync.schedule(accepted.roster_change)
    sync.schedule(rejected.roster_change)
    await sync.drain()

    assert chat_store.rooms[pid].participant(str(world.student_ids[0])) is None
    assert publisher.of_kind(ChatEventKind.PARTICIPANT_ADDED) == []


async def test_stale_remove_does_not_evict_reaccepted_student(db, chat_store, roster_sync):
    world = await build_world(db, positions=1, students=1)
    pid = str(world.project_id)
    faculty_user = await db.get(User, world.faculty_user_id)
    await chat_store.create_room(pid, "Protein Folding Lab", participant_snapshot(faculty_user))
    first = await apply_decision(db, world.application_ids[0], ApplicationStatus.ACCEPTED, world.owner)
    await roster_sync.sync(first.roster_change)

    rejected = await apply_decision(db, world.application_ids[0], ApplicationStatus.REJECTED, world.owner)
    await apply_decision(db, world.application_ids[0], ApplicationStatus.ACCEPTED, world.owner)
    assert await roster_sync.sync(rejected.roster_change) is True

    assert chat_store.rooms[pid].participant(str(world.student_ids[0])) is not None


async def test_remove_never_evicts_the_project_owner(db, chat_store, publisher, roster_sync):
    project_id, faculty_user, _ = await seed_room(db, chat_store)

    assert await roster_sync.sync(RosterChange(project_id, faculty_user.id, RosterAction.REMOVE)) is True

    room = chat_store.rooms[str(project_id)]
    assert room.participant(str(faculty_user.id)) is not None
    assert room.unread_count_for(str(faculty_user.id)) == 0
    assert publisher.events == []


async def test_add_without_membership_row_is_skipped(db, chat_store, publisher, roster_sync):
    project_id, _, student = await seed_room(db, chat_store, member=False)

    assert await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD)) is True

    assert chat_store.rooms[str(project_id)].participant(str(student.id)) is None
    assert publisher.events == []


async def test_transient_failures_are_retried(db, chat_store, session_factory, publisher):
    project_id, _, student = await seed_room(db, chat_store)
    chat_store.roster_failures = 2
    sync = RosterSynchronizer(session_factory, chat_store, publisher, max_attempts=3, base_delay=0)

    assert await sync.sync(RosterChange(project_id, student.id, RosterAction.ADD)) is True
    assert chat_store.rooms[str(project_id)].participant(str(student.id)) is not None


async def test_exhausted_retries_are_logged_not_raised(db, chat_store, session_factory, publisher, caplog):
    project_id, _, student = await seed_room(db, chat_store)
    chat_store.roster_failures = 5
    sync = RosterSynchronizer(session_factory, chat_store, publisher, max_attempts=2, base_delay=0)

    with caplog.at_level(logging.ERROR, logger="app.services.roster_sync"):
        assert await sync.sync(RosterChange(project_id, student.id, RosterAction.ADD)) is False

    assert "after 2 attempts" in caplog.text
    assert chat_store.rooms[str(project_id)].participant(str(student.id)) is None
    assert publisher.events == []


async def test_missing_room_counts_as_failure(db, chat_store, roster_sync):
    project_id, _, student = await seed_room(db, chat_store, room=False)

    assert await roster_sync.sync(RosterChange(project_id, student.id, RosterAction.ADD)) is False


async def test_schedule_and_drain(db, chat_store, roster_sync):
    project_id, _, student = await seed_room(db, chat_store)

    task = roster_sync.schedule(RosterChange(project_id, student.id, RosterAction.ADD))
    assert roster_sync.schedule(None) is None
    await roster_sync.drain()

    assert task.done()
    assert chat_store.rooms[str(project_id)].participant(str(student.id)) is not None
    assert roster_sync._locks == {}


async def test_participant_snapshot_copies_profile_fields(db):
    user = await make_user(db, name="Ada")
    user.profile_pic_url = "https://cdn.example.edu/ada.png"

    snapshot = participant_snapshot(user)

    assert snapshot == ParticipantSnapshot(
        id=str(user.id), name="Ada", role="USER", profile_pic_url="https://cdn.example.edu/ada.png"
    )
