"""Row factories and identity helpers shared by the tests."""

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import create_access_token
from app.db.models import (
    Application,
    ApplicationStatus,
    Faculty,
    Project,
    ProjectParticipant,
    Role,
    User,
)
from app.schemas.user import Identity


async def make_user(db: AsyncSession, name: str = "Student", role: Role = Role.USER) -> User:
    user = User(email=f"{uuid4().hex}@university.edu", name=name, role=role)
    db.add(user)
    await db.flush()
    return user


async def make_faculty(db: AsyncSession, name: str = "Dr. Rivera") -> tuple[User, Faculty]:
    user = await make_user(db, name=name, role=Role.FACULTY)
    faculty = Faculty(user_id=user.id, title="Associate Professor", department="Biology")
    db.add(faculty)
    await db.flush()
    return user, faculty


async def make_project(
    db: AsyncSession,
    faculty: Faculty,
    positions: int = 1,
    title: str = "Protein Folding Lab",
) -> Project:
    project = Project(faculty_id=faculty.id, title=title, positions_available=positions)
    db.add(project)
    await db.flush()
    return project


async def make_application(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID,
    status: ApplicationStatus = ApplicationStatus.PENDING,
) -> Application:
    application = Application(project_id=project_id, user_id=user_id, status=status)
    db.add(application)
    if status == ApplicationStatus.ACCEPTED:
        db.add(ProjectParticipant(project_id=project_id, user_id=user_id))
    await db.flush()
    return application


@dataclass
class World:
    """One project with a faculty owner and some applicants. Ids only, safe across rollbacks."""

    faculty_user_id: UUID
    faculty_id: UUID
    project_id: UUID
    initial_positions: int
    student_ids: list[UUID] = field(default_factory=list)
    application_ids: list[UUID] = field(default_factory=list)
    admin_id: UUID | None = None
    other_faculty_user_id: UUID | None = None
    other_faculty_id: UUID | None = None

    @property
    def owner(self) -> Identity:
        return Identity(user_id=self.faculty_user_id, role=Role.FACULTY, faculty_id=self.faculty_id)

    @property
    def admin(self) -> Identity:
        return Identity(user_id=self.admin_id, role=Role.ADMIN)

    @property
    def other_faculty(self) -> Identity:
        return Identity(user_id=self.other_faculty_user_id, role=Role.FACULTY, faculty_id=self.other_faculty_id)

    def student(self, index: int) -> Identity:
        return Identity(user_id=self.student_ids[index], role=Role.USER)


async def build_world(db: AsyncSession, positions: int = 1, students: int = 2) -> World:
    """Faculty + project(positions) + N students with PENDING applications, committed."""
    faculty_user, faculty = await make_faculty(db)
    other_user, other_faculty = await make_faculty(db, name="Dr. Okafor")
    admin = await make_user(db, name="Admin", role=Role.ADMIN)
    project = await make_project(db, faculty, positions=positions)

    world = World(
        faculty_user_id=faculty_user.id,
        faculty_id=faculty.id,
        project_id=project.id,
        initial_positions=positions,
        admin_id=admin.id,
        other_faculty_user_id=other_user.id,
        other_faculty_id=other_faculty.id,
    )
    for i in range(students):
        student = await make_user(db, name=f"Student {chr(ord('A') + i)}")
        application = await make_application(db, project.id, student.id)
        world.student_ids.append(student.id)
        world.application_ids.append(application.id)

    await db.commit()
    return world


def auth_headers(identity: Identity) -> dict[str, str]:
    token = create_access_token(identity.user_id, identity.role, identity.faculty_id)
    return {"Authorization": f"Bearer {token}"}
