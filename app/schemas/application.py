# app/schemas/application.py

import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.models.enums import StudentType

VALID_DEPARTMENTS = {"MECH", "CSE", "CIVIL", "EC", "AIML", "CD"}
VALID_SECTIONS = {"A", "B", "C"}
BATCH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


# ============================================================
# STUDENT -> subject selection during submission
# ============================================================
class SubjectSelectionIn(BaseModel):
    subject_id: UUID
    subject_name: str = Field(min_length=1)
    subject_code: str = Field(min_length=1)
    faculty_id: UUID
    faculty_name: Optional[str] = None


# ============================================================
# APPLICATION CREATE SCHEMA
# ============================================================
class ApplicationCreate(BaseModel):
    department: str
    semester: int = Field(ge=1, le=8)
    student_type: StudentType
    section: Optional[str] = None
    batch: Optional[str] = None
    subjects: List[SubjectSelectionIn] = []
    counsellor_id: Optional[UUID] = None
    class_advisor_id: Optional[UUID] = None
    college_number: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("department")
    @classmethod
    def check_department(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in VALID_DEPARTMENTS:
            raise ValueError(f"Invalid department. Must be one of: {', '.join(sorted(VALID_DEPARTMENTS))}")
        return value

    @field_validator("section")
    @classmethod
    def check_section(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip().upper()
        if value not in VALID_SECTIONS:
            raise ValueError(f"Invalid section. Must be one of: {', '.join(sorted(VALID_SECTIONS))}")
        return value

    @field_validator("batch")
    @classmethod
    def check_batch(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not BATCH_PATTERN.match(value):
            raise ValueError("Invalid batch format. Must be in format YYYY-YY (e.g., 2023-27)")
        return value

    @field_validator("subjects")
    @classmethod
    def check_unique_subjects(cls, value: List[SubjectSelectionIn]) -> List[SubjectSelectionIn]:
        ids = [s.subject_id for s in value]
        if len(ids) != len(set(ids)):
            raise ValueError("Each subject can only be selected once")
        return value


class PaymentCreate(BaseModel):
    transaction_id: str = Field(min_length=1, max_length=64)

    @field_validator("transaction_id")
    @classmethod
    def strip_transaction_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Transaction ID is required")
        return value


# ============================================================
# READ MODELS
# ============================================================
class SubjectRead(BaseModel):
    subject_id: UUID
    subject_name: str
    subject_code: str
    faculty_id: UUID
    faculty_name: Optional[str]
    verified: bool
    comment: Optional[str]
    verified_at: Optional[datetime]

    class Config:
        from_attributes = True


class StatusBadgeRead(BaseModel):
    label: str
    category: str


class ApplicationRead(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    student_email: Optional[EmailStr] = None
    college_number: Optional[str] = None
    department: str
    semester: int
    section: Optional[str] = None
    batch: Optional[str] = None
    student_type: str
    status: str
    badge: Optional[StatusBadgeRead] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplicationDetailRead(ApplicationRead):
    subjects: List[SubjectRead] = []

    library_verified: bool = False
    library_comment: Optional[str] = None
    hostel_verified: bool = False
    hostel_comment: Optional[str] = None
    college_office_verified: bool = False
    college_office_comment: Optional[str] = None
    hod_verified: bool = False
    hod_comment: Optional[str] = None
    counsellor_verified: bool = False
    counsellor_comment: Optional[str] = None
    class_advisor_verified: bool = False
    class_advisor_comment: Optional[str] = None
    payment_verified: bool = False
    payment_comment: Optional[str] = None
    lab_verified: bool = False
    lab_comment: Optional[str] = None
