# app/models/application.py

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Integer, String, Text, DateTime, UniqueConstraint, Uuid
from datetime import datetime, timezone
import uuid
from typing import Optional

from app.models.enums import ApplicationStatus, StudentType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Application(SQLModel, table=True):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("student_id", "semester", "department", name="uq_application_cycle"),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True)
    )

    student_id: uuid.UUID = Field(
        sa_column=Column(Uuid(as_uuid=True), nullable=False, index=True)
    )

    # Snapshots taken at submission; the student directory lives with the identity provider
    student_name: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    college_number: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    student_email: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))

    department: str = Field(sa_column=Column(String(16), nullable=False))
    semester: int = Field(sa_column=Column(Integer, nullable=False))
    section: Optional[str] = Field(default=None, sa_column=Column(String(4), nullable=True))
    batch: Optional[str] = Field(default=None, sa_column=Column(String(16), nullable=True))

    student_type: str = Field(
        default=StudentType.Local.value,
        sa_column=Column(String(16), nullable=False)
    )

    # Stored as plain text so unknown values written by other producers can still be read
    status: str = Field(
        default=ApplicationStatus.Pending.value,
        sa_column=Column(String(64), nullable=False, index=True)
    )

    counsellor_id: Optional[uuid.UUID] = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    class_advisor_id: Optional[uuid.UUID] = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )

    transaction_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))

    remarks: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
