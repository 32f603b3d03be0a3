# app/services/approval_service.py

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransition, NotFound, TransitionConflict, Unauthorized
from app.models.application import Application, utcnow
from app.models.application_subject import ApplicationSubject
from app.models.enums import ActorRole, ReviewAction
from app.services.application_service import (
    count_unverified_subjects,
    fetch_records,
    fetch_subjects,
    get_application,
)
from app.services.notification_service import (
    NotificationEvent,
    info_notification,
    transition_notification,
)
from app.services.workflow import (
    FACULTY,
    TransitionDecision,
    current_stage,
    plan_payment,
    plan_transition,
    stage_plan,
)


@dataclass
class TransitionResult:
    application: Application
    path: tuple
    notification: NotificationEvent


@dataclass
class SubjectVerificationResult:
    application: Application
    subject: ApplicationSubject
    notification: NotificationEvent
    transition: Optional[TransitionResult] = None


def _subject_label(subject: ApplicationSubject) -> str:
    return f"{subject.subject_name} ({subject.subject_code})"


async def _compare_and_swap(
    session: AsyncSession,
    application: Application,
    expected_status: str,
    new_status: str,
    now: datetime,
    **values,
):
    """
    Move the application from ``expected_status`` to ``new_status``.

    The row is only written if it still holds the expected status, so of two
    writers acting on the same snapshot exactly one wins.
    """
    application_id = application.id
    result = await session.execute(
        update(Application)
        .where((Application.id == application_id) & (Application.status == expected_status))
        .values(status=new_status, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        # rollback expires every loaded object; only plain values are used past this point
        await session.rollback()
        logger.warning(
            f"Transition conflict on application {application_id}: expected '{expected_status}' -> '{new_status}'"
        )
        raise TransitionConflict(expected_status)

    set_committed_value(application, "status", new_status)
    set_committed_value(application, "updated_at", now)
    for key, value in values.items():
        set_committed_value(application, key, value)


async def _apply_decision(
    session: AsyncSession,
    application: Application,
    decision: TransitionDecision,
    comment: Optional[str],
    actor_id: Optional[UUID],
) -> TransitionResult:
    now = utcnow()
    await _compare_and_swap(session, application, decision.from_status, decision.to_status.value, now)

    records = {r.stage: r for r in await fetch_records(session, application.id)}

    if decision.action == ReviewAction.Approve:
        for flag in decision.flags:
            record = records.get(flag.value)
            if record is None:
                continue
            record.verified = True
            record.comment = comment
            record.verified_by = actor_id
            record.verified_at = now
            session.add(record)
    else:
        # the reason goes on the refusing stage's own record; its flag stays as it was
        record = records.get(decision.stage.key)
        if record is not None:
            record.comment = comment
            session.add(record)

    notification = transition_notification(application, decision, comment)
    return TransitionResult(application=application, path=decision.path, notification=notification)


def _check_assigned_reviewer(application: Application, role: ActorRole, actor_id: Optional[UUID]):
    if actor_id is None:
        return
    assigned = {
        ActorRole.Counsellor: application.counsellor_id,
        ActorRole.ClassAdvisor: application.class_advisor_id,
    }.get(role)
    if assigned is not None and assigned != actor_id:
        raise Unauthorized(f"This application is assigned to a different {role.value.replace('_', ' ')}.", stage=role.value)


async def advance_status(
    session: AsyncSession,
    application_id: UUID,
    acting_role,
    action,
    comment: Optional[str] = None,
    actor_id: Optional[UUID] = None,
) -> TransitionResult:
    application = await get_application(session, application_id)
    plan = stage_plan(application.student_type)

    subjects = await fetch_subjects(session, application.id)
    unverified = [_subject_label(s) for s in subjects if not s.verified]

    decision = plan_transition(plan, application.status, acting_role, action, unverified_subjects=unverified)
    _check_assigned_reviewer(application, decision.stage.role, actor_id)

    result = await _apply_decision(session, application, decision, comment, actor_id)
    await session.commit()

    logger.info(
        f"Application {application.id}: {decision.stage.key} {decision.action.value} "
        f"'{decision.from_status}' -> {' -> '.join(s.value for s in decision.path)}"
    )
    return result


async def verify_subject(
    session: AsyncSession,
    application_id: UUID,
    subject_id: UUID,
    faculty_id: UUID,
    action,
    comment: Optional[str] = None,
) -> SubjectVerificationResult:
    action = ReviewAction(action)
    application = await get_application(session, application_id)
    plan = stage_plan(application.student_type)

    stage = current_stage(plan, application.status)
    if stage is not FACULTY:
        raise InvalidTransition(
            "Application is not waiting on faculty verification.",
            status=application.status,
        )

    subjects = await fetch_subjects(session, application.id)
    subject = next((s for s in subjects if s.subject_id == subject_id), None)
    if subject is None:
        raise NotFound(f"Subject {subject_id} is not part of application {application_id}")

    if subject.faculty_id != faculty_id:
        raise Unauthorized("Only the faculty assigned to this subject can verify it.", stage=FACULTY.key)

    if action == ReviewAction.Reject:
        subject.comment = comment
        session.add(subject)
        decision = plan_transition(plan, application.status, ActorRole.Faculty, ReviewAction.Reject)
        transition = await _apply_decision(session, application, decision, comment, faculty_id)
        await session.commit()
        logger.info(f"Application {application.id}: subject {subject.subject_code} rejected by faculty {faculty_id}")
        return SubjectVerificationResult(application, subject, transition.notification, transition)

    # claim the application row at its current status before touching the subject,
    # so concurrent sign-offs and rejections on the same application take turns
    now = utcnow()
    await _compare_and_swap(session, application, application.status, application.status, now)

    subject.verified = True
    subject.comment = comment
    subject.verified_at = now
    session.add(subject)

    outstanding = await count_unverified_subjects(session, application.id)
    if outstanding:
        await session.commit()
        logger.info(
            f"Application {application.id}: subject {subject.subject_code} verified, {outstanding} outstanding"
        )
        notification = info_notification(
            application,
            "Subject Verification Completed",
            f"{subject.faculty_name or 'A faculty member'} has verified {subject.subject_name}. "
            "Waiting for other faculty verifications.",
        )
        return SubjectVerificationResult(application, subject, notification)

    # last subject in: the faculty stage is complete
    decision = plan_transition(plan, application.status, ActorRole.Faculty, ReviewAction.Approve)
    transition = await _apply_decision(session, application, decision, comment, faculty_id)
    await session.commit()
    logger.info(f"Application {application.id}: all subjects verified, now {application.status}")
    return SubjectVerificationResult(application, subject, transition.notification, transition)


async def submit_payment(
    session: AsyncSession,
    application_id: UUID,
    student_id: UUID,
    transaction_id: str,
) -> TransitionResult:
    application = await get_application(session, application_id)
    if application.student_id != student_id:
        raise Unauthorized("Only the applicant can record the payment for this application.")

    decision = plan_payment(stage_plan(application.student_type), application.status)
    now = utcnow()
    await _compare_and_swap(
        session,
        application,
        decision.from_status,
        decision.to_status.value,
        now,
        transaction_id=transaction_id,
    )
    await session.commit()

    logger.info(f"Application {application.id}: payment recorded (txn {transaction_id})")
    return TransitionResult(
        application=application,
        path=decision.path,
        notification=transition_notification(application, decision),
    )
