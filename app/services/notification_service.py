# app/services/notification_service.py

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from loguru import logger

from app.models.application import Application
from app.models.enums import ActorRole, ApplicationStatus, NotificationKind, ReviewAction
from app.services.email_service import send_status_update_email
from app.services.workflow import TransitionDecision


@dataclass(frozen=True)
class NotificationEvent:
    """One message for the notification collaborator; this service never stores it."""
    application_id: UUID
    student_id: UUID
    kind: NotificationKind
    title: str
    message: str
    path: tuple = ()
    notify_roles: tuple = field(default=())
    student_email: Optional[str] = None
    student_name: Optional[str] = None


def _with_note(message: str, comment: Optional[str]) -> str:
    return f"{message} Note: {comment}" if comment else message


def transition_notification(
    application: Application,
    decision: TransitionDecision,
    comment: Optional[str] = None,
) -> NotificationEvent:
    stage = decision.stage

    if decision.action == ReviewAction.Reject:
        kind = NotificationKind.Rejection
        title = f"Application Rejected by {stage.label}"
        message = f"Your no dues application was rejected at the {stage.label} stage. Reason: {comment or 'Not specified'}"
        roles = decision.upstream_roles
    elif decision.to_status == ApplicationStatus.Completed:
        kind = NotificationKind.Approval
        title = "No Due Certificate Approved!"
        message = _with_note("Congratulations! Your no dues certificate is ready and can now be downloaded.", comment)
        roles = ()
    elif decision.to_status == ApplicationStatus.PaymentPending:
        kind = NotificationKind.Info
        title = "Lab Charge Payment Recorded"
        message = "Your lab charge payment has been recorded and is awaiting lab verification."
        roles = (stage.role,)
    else:
        kind = NotificationKind.Approval
        title = f"{stage.label} Verification Approved"
        following = decision.next_stage
        if following is not None and following.role == ActorRole.LabInstructor:
            message = f"Your application has been verified by the {stage.label}. You can now proceed to lab charge payment."
        elif following is not None:
            message = f"Your application has been verified by the {stage.label} and sent to {following.label} for verification."
        else:
            message = f"Your application has been verified by the {stage.label}."
        message = _with_note(message, comment)
        roles = (following.role,) if following is not None else ()

    return NotificationEvent(
        application_id=application.id,
        student_id=application.student_id,
        kind=kind,
        title=title,
        message=message,
        path=tuple(s.value for s in decision.path),
        notify_roles=tuple(r.value for r in roles),
        student_email=application.student_email,
        student_name=application.student_name,
    )


def info_notification(application: Application, title: str, message: str, notify_roles=()) -> NotificationEvent:
    return NotificationEvent(
        application_id=application.id,
        student_id=application.student_id,
        kind=NotificationKind.Info,
        title=title,
        message=message,
        notify_roles=tuple(getattr(r, "value", r) for r in notify_roles),
        student_email=application.student_email,
        student_name=application.student_name,
    )


def dispatch_notification(event: NotificationEvent) -> None:
    """Hand an event to the outside world. Meant to run as a background task."""
    logger.info(
        f"Notify student {event.student_id} [{event.kind.value}] {event.title}"
        + (f" (also roles: {', '.join(event.notify_roles)})" if event.notify_roles else "")
    )

    if not event.student_email:
        return

    try:
        send_status_update_email(
            {
                "name": event.student_name,
                "email": event.student_email,
                "title": event.title,
                "message": event.message,
                "kind": event.kind.value,
                "application_id": event.application_id,
            }
        )
    except Exception:
        logger.exception(f"Failed to deliver notification for application {event.application_id}")
