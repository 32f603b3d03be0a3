from pydantic import BaseModel
from uuid import UUID
from typing import List, Optional

from app.models.enums import ReviewAction
from app.schemas.application import ApplicationDetailRead


class StageActionRequest(BaseModel):
    comment: Optional[str] = None


class SubjectActionRequest(BaseModel):
    action: ReviewAction = ReviewAction.Approve
    comment: Optional[str] = None


class NotificationRead(BaseModel):
    kind: str
    title: str
    message: str
    notify_roles: List[str] = []


class StageActionResponse(BaseModel):
    application: ApplicationDetailRead
    path: List[str]
    notification: NotificationRead


class SubjectActionResponse(BaseModel):
    application: ApplicationDetailRead
    subject_id: UUID
    verified: bool
    path: List[str] = []
    notification: NotificationRead
