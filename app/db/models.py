"""
SQLAlchemy 2.0 Models for ResearchHub.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys and proper relationship definitions.

Only the tables the collaboration core touches live here: the capacity
ledger (projects.positions_available + project_participants), applications,
and the user/faculty rows that chat participant snapshots are taken from.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


# =============================================================================
# ENUMS
# =============================================================================


class Role(str, PyEnum):
    """Role carried by identity tokens and user rows."""

    USER = "USER"
    FACULTY = "FACULTY"
    ADMIN = "ADMIN"


class ApplicationStatus(str, PyEnum):
    """Decision state of an application."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class ProjectStatus(str, PyEnum):
    """Lifecycle of a research project."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    COMPLETED = "COMPLETED"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    Platform account (student, faculty member or admin).

    Chat participant snapshots (name, role, profile picture) are copied from here.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role"), nullable=False, default=Role.USER
    )
    profile_pic_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    faculty_profile: Mapped[Optional["Faculty"]] = relationship(
        "Faculty", back_populates="user", uselist=False
    )
    applications: Mapped[list["Application"]] = relationship(
        "Application", back_populates="user", passive_deletes=True
    )


class Faculty(Base):
    """Faculty profile (1:1 with a FACULTY user). Projects are owned by this row."""

    __tablename__ = "faculty"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # e.g., "Associate Professor"
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="faculty_profile")
    projects: Mapped[list["Project"]] = relationship(
        "Project", back_populates="faculty", passive_deletes=True
    )


class Project(Base):
    """
    Faculty-led research project.

    positions_available is a semaphore: every ACCEPTED application holds one
    unit. It is written only by the capacity ledger.
    """

    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_faculty_id", "faculty_id"),
        CheckConstraint("positions_available >= 0", name="non_negative_positions"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    faculty_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("faculty.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    positions_available: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus, name="project_status"), nullable=False, default=ProjectStatus.OPEN
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    faculty: Mapped["Faculty"] = relationship("Faculty", back_populates="projects")
    applications: Mapped[list["Application"]] = relationship(
        "Application", back_populates="project", cascade="all, delete-orphan"
    )
    participants: Mapped[list["ProjectParticipant"]] = relationship(
        "ProjectParticipant", back_populates="project", cascade="all, delete-orphan"
    )


class Application(Base):
    """
    A student's application to a project.

    Created PENDING; afterwards mutated only by the decision state machine.
    """

    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="unique_project_application"),
        Index("idx_applications_project_status", "project_id", "status"),
        Index("idx_applications_user_id", "user_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    cover_letter: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resume_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="applications")
    user: Mapped["User"] = relationship("User", back_populates="applications")


class ProjectParticipant(Base):
    """Membership row: one per accepted, still-active student."""

    __tablename__ = "project_participants"
    __table_args__ = (Index("idx_project_participants_user_id", "user_id"),)

    project_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="participants")
    user: Mapped["User"] = relationship("User")
