# app/api/serializers.py

from app.models.application import Application
from app.schemas.application import ApplicationDetailRead, ApplicationRead, StatusBadgeRead, SubjectRead
from app.schemas.approval import NotificationRead
from app.services.application_service import ApplicationDetail, flag_view
from app.services.notification_service import NotificationEvent
from app.services.status_presenter import render_status


def badge_for(status) -> StatusBadgeRead:
    badge = render_status(status)
    return StatusBadgeRead(label=badge.label, category=badge.category.value)


def application_read(application: Application) -> ApplicationRead:
    data = ApplicationRead.model_validate(application)
    data.badge = badge_for(application.status)
    return data


def application_detail_read(detail: ApplicationDetail) -> ApplicationDetailRead:
    base = application_read(detail.application).model_dump()
    return ApplicationDetailRead(
        **base,
        subjects=[SubjectRead.model_validate(s) for s in detail.subjects],
        **flag_view(detail.records),
    )


def notification_read(event: NotificationEvent) -> NotificationRead:
    return NotificationRead(
        kind=event.kind.value,
        title=event.title,
        message=event.message,
        notify_roles=list(event.notify_roles),
    )
