import os
import tempfile
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ------------------------------------------------------------------
# FORCE TESTING MODE
# This must be done BEFORE importing app.main so the settings and the
# database engine pick up the throwaway SQLite file.
# ------------------------------------------------------------------
_TEST_DIR = tempfile.mkdtemp(prefix="nodues-tests-")
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing-only")
os.environ.pop("SMTP_HOST", None)

from app.main import app  # noqa: E402
from app.core.database import AsyncSessionLocal, drop_db, init_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.models.enums import ActorRole, ReviewAction, StudentType  # noqa: E402
from app.services.application_service import SubjectSelection, fetch_subjects, submit_application  # noqa: E402
from app.services.approval_service import advance_status, submit_payment, verify_subject  # noqa: E402
from app.services.workflow import FACULTY, stage_plan  # noqa: E402


@pytest_asyncio.fixture
async def database():
    await drop_db()
    await init_db()
    yield
    await drop_db()


@pytest_asyncio.fixture
async def session(database):
    async with AsyncSessionLocal() as s:
        yield s


@pytest_asyncio.fixture
async def client(database):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def _headers(role, user_id=None, **claims):
        role = role.value if isinstance(role, ActorRole) else role
        token = create_access_token(user_id or uuid.uuid4(), role=role, data=claims or None)
        return {"Authorization": f"Bearer {token}"}

    return _headers


def make_subjects(count):
    return [
        SubjectSelection(
            subject_id=uuid.uuid4(),
            subject_name=f"Subject {i + 1}",
            subject_code=f"CS50{i + 1}",
            faculty_id=uuid.uuid4(),
            faculty_name=f"Faculty {i + 1}",
        )
        for i in range(count)
    ]


@pytest.fixture
def make_application(session):
    async def _make(student_type=StudentType.Hostel, subjects=2, **overrides):
        params = dict(
            student_id=uuid.uuid4(),
            department="CSE",
            semester=5,
            student_type=student_type,
            subjects=make_subjects(subjects) if isinstance(subjects, int) else subjects,
            student_name="Test Student",
        )
        params.update(overrides)
        return await submit_application(session, **params)

    return _make


@pytest.fixture
def clear_stages(session):
    """
    Drive an application through its stages with the right actors.
    Stops before ``until`` (a stage key) when given, otherwise runs to completion.
    Returns every status the application passed through.
    """

    async def _clear(application, until=None):
        visited = [application.status]
        for stage in stage_plan(application.student_type):
            if stage.key == until:
                break

            if stage is FACULTY:
                subjects = await fetch_subjects(session, application.id)
                for subject in subjects:
                    result = await verify_subject(
                        session, application.id, subject.subject_id, subject.faculty_id, ReviewAction.Approve
                    )
                    if result.transition:
                        visited.extend(s.value for s in result.transition.path)
                if subjects:
                    continue

            if not stage.auto_queue:
                paid = await submit_payment(session, application.id, application.student_id, "TXN-0001")
                visited.extend(s.value for s in paid.path)

            result = await advance_status(session, application.id, stage.role, ReviewAction.Approve, comment="ok")
            visited.extend(s.value for s in result.path)
        return visited

    return _clear
