from dataclasses import dataclass
from typing import Iterable, List, Optional
from uuid import UUID

from loguru import logger
from sqlmodel import select
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import DuplicateApplication, NotFound
from app.models.application import Application
from app.models.application_subject import ApplicationSubject
from app.models.enums import ActorRole, ApplicationStatus, StudentType, VerificationStage
from app.models.stage_verification import StageVerification
from app.services.workflow import stage_plan


@dataclass
class SubjectSelection:
    subject_id: UUID
    subject_name: str
    subject_code: str
    faculty_id: UUID
    faculty_name: Optional[str] = None


@dataclass
class ApplicationDetail:
    application: Application
    subjects: List[ApplicationSubject]
    records: List[StageVerification]

    def record(self, stage: VerificationStage) -> Optional[StageVerification]:
        return next((r for r in self.records if r.stage == stage.value), None)


def flag_view(records: Iterable[StageVerification]) -> dict:
    """Flatten verification records into the <stage>_verified / <stage>_comment pairs."""
    by_stage = {r.stage: r for r in records}
    view = {}
    for stage in VerificationStage:
        record = by_stage.get(stage.value)
        view[f"{stage.value}_verified"] = bool(record and record.verified)
        view[f"{stage.value}_comment"] = record.comment if record else None
    return view


async def submit_application(
    session: AsyncSession,
    student_id: UUID,
    department: str,
    semester: int,
    student_type: StudentType,
    subjects: List[SubjectSelection],
    section: Optional[str] = None,
    batch: Optional[str] = None,
    student_name: Optional[str] = None,
    college_number: Optional[str] = None,
    student_email: Optional[str] = None,
    counsellor_id: Optional[UUID] = None,
    class_advisor_id: Optional[UUID] = None,
    remarks: Optional[str] = None,
) -> Application:
    plan = stage_plan(student_type)

    # ---------------------------------------
    # 1. One application per semester and department
    # ---------------------------------------
    existing_q = await session.execute(
        select(Application.id).where(
            (Application.student_id == student_id)
            & (Application.semester == semester)
            & (Application.department == department)
        )
    )
    if existing_q.first():
        raise DuplicateApplication("You have already submitted an application for this semester and department.")

    # ---------------------------------------
    # 2. Application row
    # ---------------------------------------
    app = Application(
        student_id=student_id,
        student_name=student_name,
        college_number=college_number,
        student_email=student_email,
        department=department,
        semester=semester,
        section=section,
        batch=batch,
        student_type=plan.student_type.value,
        status=ApplicationStatus.Pending.value,
        counsellor_id=counsellor_id,
        class_advisor_id=class_advisor_id,
        remarks=remarks,
    )
    session.add(app)

    # ---------------------------------------
    # 3. Verification records for the stages that apply
    # ---------------------------------------
    for flag in plan.flags():
        session.add(StageVerification(application_id=app.id, stage=flag.value))

    # ---------------------------------------
    # 4. Subject-faculty mappings, in submission order
    # ---------------------------------------
    for position, selection in enumerate(subjects):
        session.add(
            ApplicationSubject(
                application_id=app.id,
                subject_id=selection.subject_id,
                subject_name=selection.subject_name,
                subject_code=selection.subject_code,
                faculty_id=selection.faculty_id,
                faculty_name=selection.faculty_name,
                position=position,
            )
        )

    # ---------------------------------------
    # 5. Commit transaction
    # ---------------------------------------
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning(f"Integrity error while creating application for student {student_id}")
        raise DuplicateApplication()

    await session.refresh(app)
    logger.info(
        f"Application {app.id} submitted by student {student_id} "
        f"({department} sem {semester}, {plan.student_type.value}, {len(subjects)} subjects)"
    )
    return app


async def get_application(session: AsyncSession, application_id: UUID) -> Application:
    result = await session.execute(select(Application).where(Application.id == application_id))
    app = result.scalar_one_or_none()
    if not app:
        raise NotFound(f"Application {application_id} not found")
    return app


async def fetch_subjects(session: AsyncSession, application_id: UUID) -> List[ApplicationSubject]:
    result = await session.execute(
        select(ApplicationSubject)
        .where(ApplicationSubject.application_id == application_id)
        .order_by(ApplicationSubject.position.asc())
    )
    return list(result.scalars().all())


async def count_unverified_subjects(session: AsyncSession, application_id: UUID) -> int:
    result = await session.execute(
        select(func.count(ApplicationSubject.id)).where(
            (ApplicationSubject.application_id == application_id)
            & (ApplicationSubject.verified == False)  # noqa: E712
        )
    )
    return result.scalar_one()


async def fetch_records(session: AsyncSession, application_id: UUID) -> List[StageVerification]:
    result = await session.execute(
        select(StageVerification).where(StageVerification.application_id == application_id)
    )
    return list(result.scalars().all())


async def get_application_detail(session: AsyncSession, application_id: UUID) -> ApplicationDetail:
    app = await get_application(session, application_id)
    return ApplicationDetail(
        application=app,
        subjects=await fetch_subjects(session, app.id),
        records=await fetch_records(session, app.id),
    )


async def list_student_applications(session: AsyncSession, student_id: UUID) -> List[Application]:
    result = await session.execute(
        select(Application)
        .where(Application.student_id == student_id)
        .order_by(Application.created_at.desc())
    )
    return list(result.scalars().all())


async def list_review_queue(
    session: AsyncSession,
    role: ActorRole,
    reviewer_id: Optional[UUID] = None,
) -> List[Application]:
    """Applications currently waiting on ``role``, oldest first."""
    role = ActorRole(role)
    clauses = []
    for student_type in StudentType:
        plan = stage_plan(student_type)
        statuses = []
        for status in plan.statuses():
            stage = plan.stage_for(status)
            if stage is None or stage.role != role:
                continue
            # the lab does not see applications until the payment is recorded
            if not stage.auto_queue and status != stage.queue_status:
                continue
            statuses.append(status.value)
        if statuses:
            clauses.append((Application.student_type == student_type.value) & (Application.status.in_(statuses)))

    if not clauses:
        return []

    query = select(Application).where(or_(*clauses))

    if reviewer_id is not None:
        if role == ActorRole.Faculty:
            assigned = select(ApplicationSubject.application_id).where(
                (ApplicationSubject.faculty_id == reviewer_id) & (ApplicationSubject.verified == False)  # noqa: E712
            )
            query = query.where(Application.id.in_(assigned))
        elif role == ActorRole.Counsellor:
            query = query.where(or_(Application.counsellor_id == None, Application.counsellor_id == reviewer_id))  # noqa: E711
        elif role == ActorRole.ClassAdvisor:
            query = query.where(or_(Application.class_advisor_id == None, Application.class_advisor_id == reviewer_id))  # noqa: E711

    result = await session.execute(query.order_by(Application.created_at.asc()))
    return list(result.scalars().all())
