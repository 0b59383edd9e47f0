import asyncio
import sys
from pathlib import Path

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

from exam_portal.models import User  # noqa: E402
from exam_portal.services import catalog_service  # noqa: E402
from exam_portal.services.identity_service import AccountCreated, on_account_created  # noqa: E402
from exam_portal.services.policy import Principal  # noqa: E402
from exam_portal.services.submission_service import start_submission, submit_submission  # noqa: E402

# Use sqlite:///:memory: with poolclass=StaticPool to share the same in-memory DB across threads
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # All connections share the same in-memory database
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield

    # Clean up in FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM answer"))
        session.exec(text("DELETE FROM submission"))
        session.exec(text("DELETE FROM question"))
        session.exec(text("DELETE FROM exam"))
        session.exec(text("DELETE FROM schoolclass"))
        session.exec(text("DELETE FROM subject"))
        session.exec(text("DELETE FROM identityclaim"))
        session.exec(text("DELETE FROM userrole"))
        session.exec(text("DELETE FROM profile"))
        session.exec(text("DELETE FROM user"))
        session.commit()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from exam_portal.database import get_session  # noqa: E402
from exam_portal.main import app  # noqa: E402


class SyncClientWrapper:
    """Drive an httpx AsyncClient from synchronous tests."""

    def __init__(self, async_client, loop):
        self.async_client = async_client
        self.loop = loop

    def get(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

    def post(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

    def put(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.put(*args, **kwargs))

    def patch(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.patch(*args, **kwargs))


@pytest.fixture
def client():
    """Create test client using httpx AsyncClient with sync wrapper."""

    def override_get_session():
        # Must use the same test_engine instance that has tables
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()
    app.dependency_overrides.clear()


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def make_user(session, email, role=None, full_name=None, password_hash="x"):
    """Create an account and provision it the way signup does."""
    user = User(email=email, password_hash=password_hash)
    session.add(user)
    session.commit()
    session.refresh(user)
    user_id = user.id
    on_account_created(
        session,
        AccountCreated(user_id=user_id, email=email, requested_role=role, full_name=full_name),
    )
    return Principal(user_id=user_id, role=role or "student")


def make_exam(session, admin, title, subject, question_specs, exam_type="Exam"):
    """Create an exam with questions; each spec is a dict of add_question kwargs."""
    exam = catalog_service.create_exam(session, admin, title=title, subject=subject, exam_type=exam_type)
    exam_id = exam.id
    question_ids = [
        catalog_service.add_question(session, admin, exam_id=exam_id, **spec).id for spec in question_specs
    ]
    return exam_id, question_ids


@pytest.fixture
def admin(session):
    return make_user(session, "admin@example.com", role="admin", full_name="Ada Admin")


@pytest.fixture
def teacher(session):
    return make_user(session, "teacher@example.com", role="teacher", full_name="Tom Teacher")


@pytest.fixture
def student(session):
    return make_user(session, "alice@example.com", full_name="Alice Student")


@pytest.fixture
def other_student(session):
    return make_user(session, "bob@example.com", full_name="Bob Student")


@pytest.fixture
def algebra_exam(session, admin):
    """Exam with one free-text question (6 marks) and one multiple-choice question (4 marks)."""
    exam_id, question_ids = make_exam(
        session,
        admin,
        "Algebra Midterm",
        "Mathematics",
        [
            {"text": "Explain the quadratic formula.", "marks": 6},
            {
                "text": "What is 2 + 2?",
                "marks": 4,
                "question_type": "multiple_choice",
                "options": ["3", "4", "5"],
                "correct_answer": "4",
            },
        ],
    )
    return {"exam_id": exam_id, "free_text_id": question_ids[0], "mcq_id": question_ids[1]}


@pytest.fixture
def submitted(session, student, algebra_exam):
    """The student's submitted attempt at the algebra exam."""
    submission = start_submission(session, student, algebra_exam["exam_id"])
    submission = submit_submission(
        session,
        student,
        submission.id,
        [
            {"question_id": algebra_exam["free_text_id"], "answer_text": "x = (-b ± √(b²-4ac)) / 2a"},
            {"question_id": algebra_exam["mcq_id"], "answer_text": "4"},
        ],
    )
    return submission.id


def answer_ids(session, submission_id):
    """Answer ids of a submission keyed by question id."""
    from sqlmodel import select

    from exam_portal.models import Answer

    rows = session.exec(select(Answer).where(Answer.submission_id == submission_id)).all()
    return {a.question_id: a.id for a in rows}
