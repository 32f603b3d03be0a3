from fastapi import APIRouter
from typing import List

from app.api.serializers import badge_for
from app.models.enums import ApplicationStatus
from app.schemas.application import StatusBadgeRead
from app.schemas.status import StatusOption

router = APIRouter(
    prefix="/api/status",
    tags=["Status"]
)


@router.get("", response_model=List[StatusOption])
async def list_statuses():
    """Full status vocabulary with its presentation, in workflow order."""
    return [
        StatusOption(value=s.value, **badge_for(s).model_dump())
        for s in ApplicationStatus
    ]


@router.get("/{status_value}", response_model=StatusBadgeRead)
async def render_status_endpoint(status_value: str):
    return badge_for(status_value)
