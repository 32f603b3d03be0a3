from fastapi import APIRouter, Depends, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.api.deps import Principal, get_db_session, to_http_error
from app.api.serializers import application_detail_read, application_read, notification_read
from app.core.exceptions import ClearanceError
from app.core.rbac import AllowRoles, REVIEWER_ROLES
from app.models.enums import ActorRole, ReviewAction
from app.schemas.application import ApplicationRead
from app.schemas.approval import (
    StageActionRequest,
    StageActionResponse,
    SubjectActionRequest,
    SubjectActionResponse,
)
from app.services.application_service import get_application_detail, list_review_queue
from app.services.approval_service import advance_status, verify_subject
from app.services.notification_service import dispatch_notification

router = APIRouter(
    prefix="/api/approvals",
    tags=["Approvals"]
)


# ===================================================================
# REVIEW QUEUE (applications waiting on the caller's role)
# ===================================================================
@router.get("/queue", response_model=List[ApplicationRead])
async def review_queue(
    current_user: Principal = Depends(AllowRoles(*REVIEWER_ROLES)),
    session: AsyncSession = Depends(get_db_session),
):
    if current_user.role == ActorRole.Admin:
        return []

    apps = await list_review_queue(session, current_user.role, reviewer_id=current_user.id)
    return [application_read(a) for a in apps]


async def _stage_action(
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    application_id: UUID,
    principal: Principal,
    action: ReviewAction,
    comment,
) -> StageActionResponse:
    try:
        result = await advance_status(
            session,
            application_id,
            acting_role=principal.role,
            action=action,
            comment=comment,
            actor_id=principal.id,
        )
        detail = await get_application_detail(session, application_id)
    except ClearanceError as e:
        raise to_http_error(e)

    background_tasks.add_task(dispatch_notification, result.notification)

    return StageActionResponse(
        application=application_detail_read(detail),
        path=[s.value for s in result.path],
        notification=notification_read(result.notification),
    )


# ===================================================================
# APPROVE CURRENT STAGE
# ===================================================================
@router.post("/{application_id}/approve", response_model=StageActionResponse)
async def approve_stage_endpoint(
    application_id: UUID,
    background_tasks: BackgroundTasks,
    data: StageActionRequest = StageActionRequest(),
    current_user: Principal = Depends(AllowRoles(*REVIEWER_ROLES)),
    session: AsyncSession = Depends(get_db_session),
):
    return await _stage_action(
        session, background_tasks, application_id, current_user, ReviewAction.Approve, data.comment
    )


# ===================================================================
# REJECT AT CURRENT STAGE
# ===================================================================
@router.post("/{application_id}/reject", response_model=StageActionResponse)
async def reject_stage_endpoint(
    application_id: UUID,
    data: StageActionRequest,
    background_tasks: BackgroundTasks,
    current_user: Principal = Depends(AllowRoles(*REVIEWER_ROLES)),
    session: AsyncSession = Depends(get_db_session),
):
    if not data.comment or not data.comment.strip():
        raise to_http_error(
            ClearanceError("Please provide a reason for rejection", error_code="COMMENT_REQUIRED", status_code=400)
        )

    return await _stage_action(
        session, background_tasks, application_id, current_user, ReviewAction.Reject, data.comment
    )


# ===================================================================
# FACULTY: VERIFY ONE SUBJECT
# ===================================================================
@router.post("/{application_id}/subjects/{subject_id}/verify", response_model=SubjectActionResponse)
async def verify_subject_endpoint(
    application_id: UUID,
    subject_id: UUID,
    data: SubjectActionRequest,
    background_tasks: BackgroundTasks,
    current_user: Principal = Depends(AllowRoles(ActorRole.Faculty)),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        result = await verify_subject(
            session,
            application_id,
            subject_id,
            faculty_id=current_user.id,
            action=data.action,
            comment=data.comment,
        )
        detail = await get_application_detail(session, application_id)
    except ClearanceError as e:
        raise to_http_error(e)

    background_tasks.add_task(dispatch_notification, result.notification)

    return SubjectActionResponse(
        application=application_detail_read(detail),
        subject_id=subject_id,
        verified=result.subject.verified,
        path=[s.value for s in result.transition.path] if result.transition else [],
        notification=notification_read(result.notification),
    )
