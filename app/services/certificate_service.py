import os
from datetime import datetime
from uuid import UUID

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransition
from app.models.enums import ApplicationStatus
from app.services.application_service import get_application_detail
from app.services.workflow import stage_plan

# -----------------------------
# Setup Jinja2 Environment
# -----------------------------
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
template_dir = os.path.join(BASE_DIR, "templates")

certificate_env = Environment(
    loader=FileSystemLoader(template_dir),
    autoescape=select_autoescape(["html", "xml"]),
)


async def render_certificate_html(session: AsyncSession, application_id: UUID) -> str:
    """
    Render the No Due certificate of a completed application.
    Raises NotFound for unknown ids and InvalidTransition while the application is still open.
    """
    detail = await get_application_detail(session, application_id)
    application = detail.application

    if application.status != ApplicationStatus.Completed.value:
        raise InvalidTransition(
            f"Certificate available only for completed applications. Current status: '{application.status}'",
            status=application.status,
        )

    stages = []
    for stage in stage_plan(application.student_type):
        for flag in stage.flags:
            record = detail.record(flag)
            stages.append({
                "label": flag.value.replace("_", " ").title() if len(stage.flags) > 1 else stage.label,
                "verified": bool(record and record.verified),
                "comment": record.comment if record else None,
            })

    template = certificate_env.get_template("certificate.html")
    return template.render(
        application=application,
        stages=stages,
        subjects=detail.subjects,
        issued_on=datetime.now().strftime("%d-%m-%Y"),
    )
