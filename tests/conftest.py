# Pytest fixtures and test database setup.
import os
import tempfile
from pathlib import Path

import pytest

TEST_DB_PATH = Path(tempfile.gettempdir()) / "quizhub_test.db"

os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["UPLOAD_DIR"] = str(Path(tempfile.gettempdir()) / "quizhub_test_uploads")

from fastapi.testclient import TestClient  # noqa: E402

from quizhub.database import Base, SessionLocal, engine  # noqa: E402
from quizhub.main import app  # noqa: E402
from quizhub.models import Category, Question, Role, User  # noqa: E402
from quizhub.otp import get_otp_client  # noqa: E402
from quizhub.security import create_access_token, generate_salt, hash_password  # noqa: E402


# Stand-in OTP provider that approves one fixed code.
class FakeOtpClient:
    valid_code = "123456"

    def __init__(self):
        self.sent = []
        self.checked = []

    def send_verification(self, phone_e164: str) -> None:
        self.sent.append(phone_e164)

    def check_verification(self, phone_e164: str, code: str) -> bool:
        self.checked.append((phone_e164, code))
        return code == self.valid_code


@pytest.fixture()
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


# Provide a session against a freshly created schema.
@pytest.fixture()
def db(reset_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def otp_client():
    return FakeOtpClient()


# Provide a FastAPI test client with the OTP provider faked out.
@pytest.fixture()
def client(reset_db, otp_client):
    app.dependency_overrides[get_otp_client] = lambda: otp_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# Build users directly in the store and return them with a bearer header.
@pytest.fixture()
def make_user(db):
    counter = {"value": 0}

    def _make(username: str, role: Role = Role.USER, password: str = "secret"):
        counter["value"] += 1
        salt = generate_salt()
        user = User(
            phone_number=f"+1555000{counter['value']:04d}",
            username=username,
            password_hash=hash_password(password, salt),
            password_salt=salt,
            role=role.value,
            profile={},
            xp=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        headers = {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
        return user, headers

    return _make


# Seed a category with a number of questions of one difficulty.
@pytest.fixture()
def seed_category(db):
    def _seed(name: str, count: int = 5, difficulty: str = "Beginner", timer_secs: int = 30):
        category = Category(name=name, tags=[])
        db.add(category)
        db.commit()
        db.refresh(category)
        for idx in range(1, count + 1):
            db.add(
                Question(
                    category_id=category.id,
                    text=f"{name} question {idx}?",
                    question_type="MultipleChoice",
                    options=[f"Answer {idx}", "Wrong A", "Wrong B", "Wrong C"],
                    correct_answer=f"Answer {idx}",
                    explanation=f"Answer {idx} is correct.",
                    difficulty=difficulty,
                    timer_secs=timer_secs,
                    tags=[name.lower()],
                )
            )
        db.commit()
        return category

    return _seed


# Map question ids to correct answers for a quiz payload.
@pytest.fixture()
def answer_key(db):
    def _key(question_ids):
        questions = db.query(Question).filter(Question.id.in_(question_ids)).all()
        return {question.id: question.correct_answer for question in questions}

    return _key
