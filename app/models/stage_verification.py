# app/models/stage_verification.py

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
import uuid
from datetime import datetime
from typing import Optional

from app.models.application import utcnow


class StageVerification(SQLModel, table=True):
    """One verification record per (application, stage) flag."""

    __tablename__ = "stage_verifications"
    __table_args__ = (
        UniqueConstraint("application_id", "stage", name="uq_stage_verification"),
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

    # VerificationStage value
    stage: str = Field(sa_column=Column(String(32), nullable=False))

    verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))

    comment: Optional[str] = Field(default=None, sa_column=Column(String, nullable=True))

    verified_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )

    verified_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
