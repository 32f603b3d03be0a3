# app/core/rbac.py

from fastapi import Depends, HTTPException, status
from app.api.deps import Principal, get_current_principal
from app.models.enums import ActorRole

def AllowRoles(*allowed_roles):
    """
    Flexible RBAC:
    - Accepts ActorRole values or raw strings
    - Case-insensitive
    - Admin passes every route guard (the workflow itself still checks stage roles)
    """

    def normalize(role) -> str:
        if isinstance(role, ActorRole):
            return role.value.lower().strip()
        return str(role).lower().strip()

    normalized_allowed = {normalize(r) for r in allowed_roles}

    async def role_checker(principal: Principal = Depends(get_current_principal)):
        user_role = normalize(principal.role)

        # Admin bypass
        if user_role == ActorRole.Admin.value:
            return principal

        if user_role not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied for role '{principal.role.value}'"
            )

        return principal

    return role_checker


# every role that signs off a stage
REVIEWER_ROLES = (
    ActorRole.Library,
    ActorRole.Hostel,
    ActorRole.CollegeOffice,
    ActorRole.Faculty,
    ActorRole.Counsellor,
    ActorRole.ClassAdvisor,
    ActorRole.HOD,
    ActorRole.LabInstructor,
)
