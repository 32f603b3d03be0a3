import asyncio
import random
import uuid

import pytest
from sqlalchemy import update

from app.core.database import AsyncSessionLocal
from app.core.exceptions import (
    DuplicateApplication,
    IncompleteVerification,
    InvalidTransition,
    NotFound,
    TransitionConflict,
    Unauthorized,
)
from app.models.application import Application
from app.models.enums import (
    ActorRole,
    ApplicationStatus,
    NotificationKind,
    ReviewAction,
    StudentType,
    VerificationStage,
)
from app.services.application_service import (
    fetch_subjects,
    flag_view,
    get_application,
    get_application_detail,
    list_review_queue,
)
from app.services import approval_service
from app.services.approval_service import advance_status, submit_payment, verify_subject
from app.services.workflow import stage_plan


async def force_status(application_id, status):
    """Write a status behind the engine's back, like another producer would."""
    async with AsyncSessionLocal() as other:
        await other.execute(
            update(Application).where(Application.id == application_id).values(status=status)
        )
        await other.commit()


async def fresh_application(application_id):
    async with AsyncSessionLocal() as other:
        return await get_application(other, application_id)


# ------------------------------------------------------------------
# Submission
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_submit_creates_pending_application(session, make_application):
    app = await make_application(student_type=StudentType.Local, subjects=3)

    detail = await get_application_detail(session, app.id)

    assert app.status == ApplicationStatus.Pending.value
    assert app.student_type == "local"
    assert [s.subject_name for s in detail.subjects] == ["Subject 1", "Subject 2", "Subject 3"]
    assert not any(s.verified for s in detail.subjects)

    stages = {r.stage for r in detail.records}
    assert VerificationStage.Hostel.value not in stages
    assert stages == {f.value for f in stage_plan("local").flags()}
    assert not any(r.verified for r in detail.records)


@pytest.mark.asyncio
async def test_hostel_students_get_a_hostel_record(session, make_application):
    app = await make_application(student_type=StudentType.Hostel)

    detail = await get_application_detail(session, app.id)

    assert detail.record(VerificationStage.Hostel) is not None
    assert len(detail.records) == 8


@pytest.mark.asyncio
async def test_duplicate_submission_rejected(make_application):
    student_id = uuid.uuid4()
    await make_application(student_id=student_id, semester=4)

    with pytest.raises(DuplicateApplication):
        await make_application(student_id=student_id, semester=4)

    other = await make_application(student_id=student_id, semester=5)
    assert other.status == "pending"


# ------------------------------------------------------------------
# Transitions
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_unknown_application_is_not_found(session):
    with pytest.raises(NotFound):
        await advance_status(session, uuid.uuid4(), ActorRole.Library, ReviewAction.Approve)


@pytest.mark.asyncio
async def test_library_approval_sets_flag_and_queues_hostel(session, make_application):
    app = await make_application(student_type=StudentType.Hostel)

    result = await advance_status(
        session, app.id, ActorRole.Library, ReviewAction.Approve, comment="No books due", actor_id=uuid.uuid4()
    )

    assert [s.value for s in result.path] == ["library_verified", "hostel_verification_pending"]
    assert result.application.status == "hostel_verification_pending"
    assert (await fresh_application(app.id)).status == "hostel_verification_pending"

    detail = await get_application_detail(session, app.id)
    library = detail.record(VerificationStage.Library)
    assert library.verified is True
    assert library.comment == "No books due"
    assert library.verified_at is not None

    assert result.notification.kind == NotificationKind.Approval
    assert result.notification.notify_roles == ("hostel",)
    assert result.notification.student_id == app.student_id


@pytest.mark.asyncio
async def test_wrong_role_changes_nothing(session, make_application):
    app = await make_application()

    with pytest.raises(Unauthorized):
        await advance_status(session, app.id, ActorRole.HOD, ReviewAction.Approve)

    assert (await fresh_application(app.id)).status == "pending"
    detail = await get_application_detail(session, app.id)
    assert not any(r.verified for r in detail.records)


@pytest.mark.asyncio
async def test_local_application_path_skips_hostel(make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local)

    visited = await clear_stages(app)

    assert "hostel_verification_pending" not in visited
    assert "hostel_verified" not in visited
    assert visited[-1] == "completed"


@pytest.mark.asyncio
async def test_hostel_application_clears_hostel_first(make_application, clear_stages):
    app = await make_application(student_type=StudentType.Hostel)

    visited = await clear_stages(app)

    assert visited.index("hostel_verified") < visited.index("college_office_verification_pending")
    assert visited[-1] == "completed"


@pytest.mark.asyncio
async def test_completed_implies_every_flag_and_subject(session, make_application, clear_stages):
    rng = random.Random(20240501)

    for _ in range(6):
        student_type = rng.choice(list(StudentType))
        app = await make_application(student_type=student_type, subjects=rng.randint(0, 4))

        await clear_stages(app)

        detail = await get_application_detail(session, app.id)
        assert detail.application.status == "completed"
        assert all(detail.record(flag).verified for flag in stage_plan(student_type).flags())
        assert all(s.verified for s in detail.subjects)
        assert detail.application.transaction_id == "TXN-0001"


@pytest.mark.asyncio
async def test_reject_preserves_earlier_flags(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Hostel, subjects=2, remarks="Final semester clearance")
    await clear_stages(app, until="hod")

    result = await advance_status(session, app.id, ActorRole.HOD, ReviewAction.Reject, comment="Attendance shortage")

    assert result.application.status == "rejected"
    assert result.notification.kind == NotificationKind.Rejection
    assert "hostel" in result.notification.notify_roles

    detail = await get_application_detail(session, app.id)
    flags = flag_view(detail.records)
    assert flags["library_verified"] is True
    assert flags["hostel_verified"] is True
    assert flags["class_advisor_verified"] is True
    assert flags["hod_verified"] is False
    assert flags["hod_comment"] == "Attendance shortage"
    assert detail.application.remarks == "Final semester clearance"
    assert all(s.verified for s in detail.subjects)


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", ["completed", "rejected"])
async def test_terminal_applications_refuse_every_role(session, make_application, terminal):
    app = await make_application()
    await force_status(app.id, terminal)
    await session.refresh(app)

    for role in ActorRole:
        for action in ReviewAction:
            with pytest.raises(InvalidTransition):
                await advance_status(session, app.id, role, action, comment="late")


@pytest.mark.asyncio
async def test_corrupted_status_is_invalid(session, make_application):
    app = await make_application()
    await force_status(app.id, "garbage_value")
    await session.refresh(app)

    with pytest.raises(InvalidTransition):
        await advance_status(session, app.id, ActorRole.Library, ReviewAction.Approve)


def overlap_reads(monkeypatch, parties=2):
    """Hold each caller right after it has read the application until all callers have read it."""
    arrived = []
    everyone_read = asyncio.Event()
    original = approval_service.fetch_subjects

    async def fetch_and_wait(session, application_id):
        subjects = await original(session, application_id)
        arrived.append(application_id)
        if len(arrived) >= parties:
            everyone_read.set()
        await everyone_read.wait()
        return subjects

    monkeypatch.setattr(approval_service, "fetch_subjects", fetch_and_wait)


async def in_own_session(call, *args, **kwargs):
    async with AsyncSessionLocal() as own:
        return await call(own, *args, **kwargs)


@pytest.mark.asyncio
async def test_racing_approvals_only_one_wins(monkeypatch, make_application):
    app = await make_application(student_type=StudentType.Local)
    overlap_reads(monkeypatch)

    results = await asyncio.gather(
        in_own_session(advance_status, app.id, ActorRole.Library, ReviewAction.Approve, comment="first"),
        in_own_session(advance_status, app.id, ActorRole.Library, ReviewAction.Approve, comment="second"),
        return_exceptions=True,
    )

    wins = [r for r in results if not isinstance(r, BaseException)]
    conflicts = [r for r in results if isinstance(r, TransitionConflict)]
    assert len(wins) == 1
    assert len(conflicts) == 1
    assert wins[0].application.status == "college_office_verification_pending"

    winner_comment = ["first", "second"][results.index(wins[0])]
    detail = await in_own_session(get_application_detail, app.id)
    assert detail.application.status == "college_office_verification_pending"
    assert detail.record(VerificationStage.Library).verified is True
    assert detail.record(VerificationStage.Library).comment == winner_comment


# ------------------------------------------------------------------
# Faculty subjects
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_faculty_gate_names_the_unverified_subject(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=3)
    await clear_stages(app, until="faculty")
    subjects = await fetch_subjects(session, app.id)

    for subject in subjects[:2]:
        partial = await verify_subject(session, app.id, subject.subject_id, subject.faculty_id, ReviewAction.Approve)
        assert partial.transition is None
        assert partial.notification.kind == NotificationKind.Info

    with pytest.raises(IncompleteVerification) as exc:
        await advance_status(session, app.id, ActorRole.Faculty, ReviewAction.Approve)
    assert exc.value.missing == ["Subject 3 (CS503)"]

    last = subjects[2]
    done = await verify_subject(session, app.id, last.subject_id, last.faculty_id, ReviewAction.Approve, comment="ok")
    assert [s.value for s in done.transition.path] == ["faculty_verified"]
    assert done.application.status == "faculty_verified"

    result = await advance_status(session, app.id, ActorRole.Counsellor, ReviewAction.Approve)
    assert result.application.status == "counsellor_verified"


@pytest.mark.asyncio
async def test_cannot_pass_faculty_stage_with_unverified_subjects(session, make_application):
    app = await make_application(student_type=StudentType.Local, subjects=2)
    await force_status(app.id, "faculty_verified")
    await session.refresh(app)

    with pytest.raises(IncompleteVerification) as exc:
        await advance_status(session, app.id, ActorRole.Counsellor, ReviewAction.Approve)
    assert exc.value.missing == ["Subject 1 (CS501)", "Subject 2 (CS502)"]


@pytest.mark.asyncio
async def test_zero_subjects_pass_faculty_stage(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=0)
    await clear_stages(app, until="faculty")

    result = await advance_status(session, app.id, ActorRole.Faculty, ReviewAction.Approve)

    assert result.application.status == "faculty_verified"


@pytest.mark.asyncio
async def test_only_assigned_faculty_verifies_subject(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=2)
    await clear_stages(app, until="faculty")
    subject = (await fetch_subjects(session, app.id))[0]

    with pytest.raises(Unauthorized):
        await verify_subject(session, app.id, subject.subject_id, uuid.uuid4(), ReviewAction.Approve)

    with pytest.raises(NotFound):
        await verify_subject(session, app.id, uuid.uuid4(), subject.faculty_id, ReviewAction.Approve)

    subjects = await fetch_subjects(session, app.id)
    assert not any(s.verified for s in subjects)


@pytest.mark.asyncio
async def test_subject_verification_waits_for_faculty_stage(session, make_application):
    app = await make_application(subjects=1)
    subject = (await fetch_subjects(session, app.id))[0]

    with pytest.raises(InvalidTransition):
        await verify_subject(session, app.id, subject.subject_id, subject.faculty_id, ReviewAction.Approve)


@pytest.mark.asyncio
async def test_subject_rejection_rejects_application(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Hostel, subjects=2)
    await clear_stages(app, until="faculty")
    first, second = await fetch_subjects(session, app.id)

    await verify_subject(session, app.id, first.subject_id, first.faculty_id, ReviewAction.Approve)
    result = await verify_subject(
        session, app.id, second.subject_id, second.faculty_id, ReviewAction.Reject, comment="Record missing"
    )

    assert result.application.status == "rejected"
    assert result.notification.kind == NotificationKind.Rejection

    first, second = await fetch_subjects(session, app.id)
    assert first.verified is True
    assert second.verified is False
    assert second.comment == "Record missing"


@pytest.mark.asyncio
async def test_concurrent_last_subjects_advance_faculty_stage(monkeypatch, session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=2)
    await clear_stages(app, until="faculty")
    pairs = [(s.subject_id, s.faculty_id) for s in await fetch_subjects(session, app.id)]
    overlap_reads(monkeypatch)

    results = await asyncio.gather(
        *(
            in_own_session(verify_subject, app.id, subject_id, faculty_id, ReviewAction.Approve)
            for subject_id, faculty_id in pairs
        ),
        return_exceptions=True,
    )

    assert not any(isinstance(r, BaseException) for r in results)
    assert len([r for r in results if r.transition is not None]) == 1

    detail = await in_own_session(get_application_detail, app.id)
    assert detail.application.status == "faculty_verified"
    assert all(s.verified for s in detail.subjects)


@pytest.mark.asyncio
async def test_subject_cannot_be_verified_after_concurrent_rejection(
    monkeypatch, session, make_application, clear_stages
):
    app = await make_application(student_type=StudentType.Local, subjects=2)
    await clear_stages(app, until="faculty")
    refused, approved = await fetch_subjects(session, app.id)
    refused_ids = (refused.subject_id, refused.faculty_id)
    approved_ids = (approved.subject_id, approved.faculty_id)
    overlap_reads(monkeypatch)

    rejection, approval = await asyncio.gather(
        in_own_session(verify_subject, app.id, *refused_ids, ReviewAction.Reject, comment="Lab file missing"),
        in_own_session(verify_subject, app.id, *approved_ids, ReviewAction.Approve),
        return_exceptions=True,
    )

    assert rejection.application.status == "rejected"

    detail = await in_own_session(get_application_detail, app.id)
    assert detail.application.status == "rejected"
    by_id = {s.subject_id: s for s in detail.subjects}
    assert by_id[refused_ids[0]].verified is False
    if isinstance(approval, TransitionConflict):
        # the rejection landed first, so the other sign-off must not stick
        assert by_id[approved_ids[0]].verified is False
    else:
        assert approval.transition is None
        assert by_id[approved_ids[0]].verified is True


# ------------------------------------------------------------------
# Payment and lab
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_lab_waits_for_recorded_payment(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=1)
    await clear_stages(app, until="lab")
    assert app.status == "hod_verified"

    with pytest.raises(IncompleteVerification) as exc:
        await advance_status(session, app.id, ActorRole.LabInstructor, ReviewAction.Approve)
    assert exc.value.missing == ["payment"]

    with pytest.raises(Unauthorized):
        await submit_payment(session, app.id, uuid.uuid4(), "TXN-42")

    paid = await submit_payment(session, app.id, app.student_id, "TXN-42")
    assert paid.application.status == "payment_pending"
    assert paid.application.transaction_id == "TXN-42"
    assert paid.notification.notify_roles == ("lab_instructor",)

    with pytest.raises(InvalidTransition):
        await submit_payment(session, app.id, app.student_id, "TXN-43")

    done = await advance_status(session, app.id, ActorRole.LabInstructor, ReviewAction.Approve)
    assert [s.value for s in done.path] == ["lab_verified", "completed"]

    flags = flag_view((await get_application_detail(session, app.id)).records)
    assert flags["payment_verified"] is True
    assert flags["lab_verified"] is True


@pytest.mark.asyncio
async def test_lab_rejection_comment_lands_on_lab_record(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=0)
    await clear_stages(app, until="lab")
    await submit_payment(session, app.id, app.student_id, "TXN-5")

    await advance_status(session, app.id, ActorRole.LabInstructor, ReviewAction.Reject, comment="Breakage unpaid")

    flags = flag_view((await get_application_detail(session, app.id)).records)
    assert flags["lab_verified"] is False
    assert flags["lab_comment"] == "Breakage unpaid"
    assert flags["payment_comment"] is None


@pytest.mark.asyncio
async def test_assigned_counsellor_must_act(session, make_application, clear_stages):
    counsellor_id = uuid.uuid4()
    app = await make_application(student_type=StudentType.Local, subjects=0, counsellor_id=counsellor_id)
    await clear_stages(app, until="counsellor")

    with pytest.raises(Unauthorized):
        await advance_status(session, app.id, ActorRole.Counsellor, ReviewAction.Approve, actor_id=uuid.uuid4())

    result = await advance_status(session, app.id, ActorRole.Counsellor, ReviewAction.Approve, actor_id=counsellor_id)
    assert result.application.status == "counsellor_verified"


# ------------------------------------------------------------------
# Review queues
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_review_queue_follows_current_stage(session, make_application, clear_stages):
    hostel_app = await make_application(student_type=StudentType.Hostel)
    local_app = await make_application(student_type=StudentType.Local)
    await advance_status(session, hostel_app.id, ActorRole.Library, ReviewAction.Approve)
    await advance_status(session, local_app.id, ActorRole.Library, ReviewAction.Approve)

    assert [a.id for a in await list_review_queue(session, ActorRole.Hostel)] == [hostel_app.id]
    assert {a.id for a in await list_review_queue(session, ActorRole.CollegeOffice)} == {local_app.id}
    assert await list_review_queue(session, ActorRole.Library) == []


@pytest.mark.asyncio
async def test_lab_queue_only_shows_paid_applications(session, make_application, clear_stages):
    app = await make_application(student_type=StudentType.Local, subjects=0)
    await clear_stages(app, until="lab")

    assert await list_review_queue(session, ActorRole.LabInstructor) == []

    await submit_payment(session, app.id, app.student_id, "TXN-7")
    assert [a.id for a in await list_review_queue(session, ActorRole.LabInstructor)] == [app.id]
