# app/models/application_subject.py

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
import uuid
from datetime import datetime
from typing import Optional


class ApplicationSubject(SQLModel, table=True):
    __tablename__ = "application_subjects"
    __table_args__ = (
        UniqueConstraint("application_id", "subject_id", name="uq_application_subject"),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True)
    )

    application_id: uuid.UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )

    subject_id: uuid.UUID = Field(sa_column=Column(Uuid(as_uuid=True), nullable=False))
    subject_name: str = Field(sa_column=Column(String, nullable=False))
    subject_code: str = Field(sa_column=Column(String(32), nullable=False))

    faculty_id: uuid.UUID = Field(sa_column=Column(Uuid(as_uuid=True), nullable=False, index=True))
    faculty_name: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))

    verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    comment: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))
    verified_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    # insertion order for display
    position: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
