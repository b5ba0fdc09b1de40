"""End-to-end tests for project creation, applications and decisions over HTTP."""

from app.db.models import Role
from app.schemas.chat import ParticipantSnapshot
from app.schemas.user import Identity
from tests.factories import auth_headers, build_world, make_user


async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/applications/me")
    assert response.status_code == 401


async def test_faculty_creates_project_and_room(client, db, chat_store):
    world = await build_world(db, students=0)

    response = await client.post(
        "/projects/",
        json={"title": "Coral Reef Survey", "positions_available": 2},
        headers=auth_headers(world.owner),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["positions_available"] == 2
    room = chat_store.rooms[body["id"]]
    assert [p.id for p in room.participants] == [str(world.faculty_user_id)]


async def test_students_cannot_create_projects(client, db):
    world = await build_world(db, students=1)

    response = await client.post(
        "/projects/", json={"title": "Nope"}, headers=auth_headers(world.student(0))
    )

    assert response.status_code == 403


async def test_apply_once_per_project(client, db):
    world = await build_world(db, students=0)
    newcomer = await make_user(db, name="Newcomer")
    await db.commit()
    student = Identity(user_id=newcomer.id, role=Role.USER)
    url = f"/applications/project/{world.project_id}/apply"

    first = await client.post(url, json={"cover_letter": "I love proteins"}, headers=auth_headers(student))
    second = await client.post(url, json={}, headers=auth_headers(student))

    assert first.status_code == 201
    assert first.json()["status"] == "PENDING"
    assert second.status_code == 409

    mine = await client.get("/applications/me", headers=auth_headers(student))
    assert [a["id"] for a in mine.json()] == [first.json()["id"]]


async def test_capacity_scenario(client, db, chat_store, roster_sync):
    """positions=1, A and B pending: accept A succeeds, accept B is refused."""
    world = await build_world(db, positions=1, students=2)
    await chat_store.create_room(str(world.project_id), "Protein Folding Lab", _faculty_snapshot(world))
    owner = auth_headers(world.owner)

    accept_a = await client.post(
        f"/applications/{world.application_ids[0]}/status", json={"status": "ACCEPTED"}, headers=owner
    )
    accept_b = await client.post(
        f"/applications/{world.application_ids[1]}/status", json={"status": "ACCEPTED"}, headers=owner
    )

    assert accept_a.status_code == 200
    assert accept_a.json()["positions_available"] == 0
    assert accept_a.json()["changed"] is True
    assert accept_b.status_code == 409
    assert accept_b.json()["detail"] == "No positions available for this project"

    b = await client.get(f"/applications/{world.application_ids[1]}", headers=owner)
    assert b.json()["status"] == "PENDING"

    await roster_sync.drain()
    room = chat_store.rooms[str(world.project_id)]
    assert {p.id for p in room.participants} == {str(world.faculty_user_id), str(world.student_ids[0])}


async def test_repeated_decision_is_idempotent(client, db):
    world = await build_world(db, positions=2, students=1)
    url = f"/applications/{world.application_ids[0]}/status"

    first = await client.put(url, json={"status": "ACCEPTED"}, headers=auth_headers(world.owner))
    second = await client.put(url, json={"status": "ACCEPTED"}, headers=auth_headers(world.owner))

    assert first.json()["positions_available"] == 1
    assert second.json()["changed"] is False
    assert second.json()["positions_available"] == 1


async def test_decision_permissions(client, db):
    world = await build_world(db, positions=1, students=1)
    url = f"/applications/{world.application_ids[0]}/status"

    as_student = await client.post(url, json={"status": "ACCEPTED"}, headers=auth_headers(world.student(0)))
    as_other_faculty = await client.post(
        url, json={"status": "ACCEPTED"}, headers=auth_headers(world.other_faculty)
    )
    as_admin = await client.post(url, json={"status": "ACCEPTED"}, headers=auth_headers(world.admin))

    assert as_student.status_code == 403
    assert as_other_faculty.status_code == 403
    assert as_admin.status_code == 200


async def test_invalid_status_value(client, db):
    world = await build_world(db, students=1)

    response = await client.post(
        f"/applications/{world.application_ids[0]}/status",
        json={"status": "MAYBE"},
        headers=auth_headers(world.owner),
    )

    assert response.status_code == 422


async def test_project_applications_visible_to_owner_only(client, db):
    world = await build_world(db, students=2)
    url = f"/applications/project/{world.project_id}"

    owner_view = await client.get(url, headers=auth_headers(world.owner))
    filtered = await client.get(url, params={"status": "ACCEPTED"}, headers=auth_headers(world.owner))
    other_view = await client.get(url, headers=auth_headers(world.other_faculty))

    assert len(owner_view.json()) == 2
    assert filtered.json() == []
    assert other_view.status_code == 403


async def test_removed_participant_leaves_the_room(client, db, chat_store, roster_sync):
    world = await build_world(db, positions=1, students=1)
    pid = str(world.project_id)
    await chat_store.create_room(pid, "Protein Folding Lab", _faculty_snapshot(world))
    owner = auth_headers(world.owner)

    await client.post(f"/applications/{world.application_ids[0]}/status", json={"status": "ACCEPTED"}, headers=owner)
    await roster_sync.drain()
    assert chat_store.rooms[pid].participant(str(world.student_ids[0])) is not None

    response = await client.delete(f"/projects/{pid}/participants/{world.student_ids[0]}", headers=owner)
    await roster_sync.drain()

    assert response.status_code == 204
    room = chat_store.rooms[pid]
    assert room.participant(str(world.student_ids[0])) is None
    assert all(u.user_id != str(world.student_ids[0]) for u in room.unread_counts)

    participants = await client.get(f"/projects/{pid}/participants", headers=owner)
    assert participants.json() == []
    application = await client.get(f"/applications/{world.application_ids[0]}", headers=owner)
    assert application.json()["status"] == "REJECTED"


def _faculty_snapshot(world):
    return ParticipantSnapshot(id=str(world.faculty_user_id), name="Dr. Rivera", role="FACULTY")


async def test_project_owner_cannot_be_removed_from_their_room(client, db, chat_store, roster_sync):
    world = await build_world(db, positions=1, students=0)
    pid = str(world.project_id)
    await chat_store.create_room(pid, "Protein Folding Lab", _faculty_snapshot(world))

    response = await client.delete(
        f"/projects/{pid}/participants/{world.faculty_user_id}", headers=auth_headers(world.owner)
    )
    await roster_sync.drain()

    assert response.status_code == 400
    assert response.json()["detail"] == "The project owner cannot be removed from the project"
    assert chat_store.rooms[pid].participant(str(world.faculty_user_id)) is not None
    chat = await client.get(f"/projects/{pid}/chat", headers=auth_headers(world.owner))
    assert chat.status_code == 200
