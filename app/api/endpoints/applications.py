from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.api.deps import Principal, get_db_session, to_http_error
from app.api.serializers import application_detail_read, application_read, notification_read
from app.core.exceptions import ClearanceError
from app.core.rbac import AllowRoles, REVIEWER_ROLES
from app.models.enums import ActorRole
from app.schemas.application import (
    ApplicationCreate,
    ApplicationDetailRead,
    ApplicationRead,
    PaymentCreate,
)
from app.schemas.approval import StageActionResponse
from app.services.application_service import (
    SubjectSelection,
    get_application_detail,
    list_student_applications,
    submit_application,
)
from app.services.approval_service import submit_payment
from app.services.certificate_service import render_certificate_html
from app.services.email_service import send_application_created_email
from app.services.notification_service import dispatch_notification

router = APIRouter(
    prefix="/api/applications",
    tags=["Applications"]
)


# ------------------------------------------------------------
# SUBMIT APPLICATION
# ------------------------------------------------------------
@router.post("", response_model=ApplicationDetailRead, status_code=status.HTTP_201_CREATED)
async def create_application(
    payload: ApplicationCreate,
    background_tasks: BackgroundTasks,
    current_user: Principal = Depends(AllowRoles(ActorRole.Student)),
    session: AsyncSession = Depends(get_db_session),
):
    if current_user.role != ActorRole.Student:
        raise HTTPException(status_code=400, detail="Only students can submit an application")

    try:
        app = await submit_application(
            session,
            student_id=current_user.id,
            department=payload.department,
            semester=payload.semester,
            student_type=payload.student_type,
            subjects=[SubjectSelection(**s.model_dump()) for s in payload.subjects],
            section=payload.section,
            batch=payload.batch,
            student_name=current_user.name,
            college_number=payload.college_number,
            student_email=current_user.email,
            counsellor_id=payload.counsellor_id,
            class_advisor_id=payload.class_advisor_id,
            remarks=payload.remarks,
        )
        detail = await get_application_detail(session, app.id)
    except ClearanceError as e:
        raise to_http_error(e)

    if current_user.email:
        background_tasks.add_task(
            send_application_created_email,
            {"name": current_user.name, "email": current_user.email, "application_id": str(app.id)},
        )

    return application_detail_read(detail)


# ------------------------------------------------------------
# MY APPLICATIONS
# ------------------------------------------------------------
@router.get("/my", response_model=List[ApplicationRead])
async def get_my_applications(
    current_user: Principal = Depends(AllowRoles(ActorRole.Student)),
    session: AsyncSession = Depends(get_db_session),
):
    apps = await list_student_applications(session, current_user.id)
    return [application_read(a) for a in apps]


# ------------------------------------------------------------
# APPLICATION DETAIL
# ------------------------------------------------------------
@router.get("/{application_id}", response_model=ApplicationDetailRead)
async def get_application(
    application_id: UUID,
    current_user: Principal = Depends(AllowRoles(ActorRole.Student, *REVIEWER_ROLES)),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        detail = await get_application_detail(session, application_id)
    except ClearanceError as e:
        raise to_http_error(e)

    if current_user.role == ActorRole.Student and detail.application.student_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized to view this application")

    return application_detail_read(detail)


# ------------------------------------------------------------
# RECORD LAB-CHARGE PAYMENT
# ------------------------------------------------------------
@router.post("/{application_id}/payment", response_model=StageActionResponse)
async def record_payment(
    application_id: UUID,
    payload: PaymentCreate,
    background_tasks: BackgroundTasks,
    current_user: Principal = Depends(AllowRoles(ActorRole.Student)),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        result = await submit_payment(session, application_id, current_user.id, payload.transaction_id)
        detail = await get_application_detail(session, application_id)
    except ClearanceError as e:
        raise to_http_error(e)

    background_tasks.add_task(dispatch_notification, result.notification)

    return StageActionResponse(
        application=application_detail_read(detail),
        path=[s.value for s in result.path],
        notification=notification_read(result.notification),
    )


# ------------------------------------------------------------
# NO DUE CERTIFICATE
# ------------------------------------------------------------
@router.get("/{application_id}/certificate", response_class=HTMLResponse)
async def download_certificate(
    application_id: UUID,
    current_user: Principal = Depends(AllowRoles(ActorRole.Student)),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        detail = await get_application_detail(session, application_id)
        if current_user.role == ActorRole.Student and detail.application.student_id != current_user.id:
            raise HTTPException(status_code=403, detail="Not authorized to access this certificate")

        html = await render_certificate_html(session, application_id)
    except ClearanceError as e:
        raise to_http_error(e)

    return HTMLResponse(
        content=html,
        headers={"Content-Disposition": f"inline; filename=No_Dues_Certificate_{application_id}.html"},
    )
