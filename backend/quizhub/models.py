import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from quizhub.database import Base
from quizhub.errors import InvalidReferenceError


def _uuid_str():
    return str(uuid.uuid4())


def _json_column():
    return JSON().with_variant(JSONB, "postgresql")


class Role(str, enum.Enum):
    USER = "User"
    ADMIN = "Admin"


class Difficulty(str, enum.Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MultipleChoice"
    TRUE_FALSE = "TrueFalse"
    CODE_PREDICTION = "CodePrediction"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    password_salt = Column(String(255), nullable=False)
    role = Column(String(10), nullable=False, default=Role.USER.value)
    profile = Column(_json_column(), nullable=False, default=dict)
    xp = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    history = relationship(
        "UserQuizHistory",
        order_by="UserQuizHistory.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("role IN ('User', 'Admin')", name="users_role_check"),
        CheckConstraint("xp >= 0", name="users_xp_check"),
    )

    @property
    def quiz_history(self):
        return [entry.quiz_token for entry in self.history]


# Append-only list of finished quiz tokens per user.
class UserQuizHistory(Base):
    __tablename__ = "user_quiz_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    quiz_token = Column(String(36), nullable=False, unique=True)
    position = Column(Integer, nullable=False)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("user_quiz_history_user_idx", "user_id", "position"),)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    name = Column(String(255), nullable=False)
    tags = Column(_json_column(), nullable=False, default=list)
    parent_id = Column(String(36), nullable=True)
    image_url = Column(Text)
    # Denormalized pointer maintained by the top-user tracker.
    top_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False)
    options = Column(_json_column(), nullable=False, default=list)
    correct_answer = Column(Text, nullable=False)
    explanation = Column(Text, nullable=False, default="")
    difficulty = Column(String(20), nullable=False)
    timer_secs = Column(Integer, nullable=False)
    tags = Column(_json_column(), nullable=False, default=list)

    __table_args__ = (
        CheckConstraint(
            "difficulty IN ('Beginner', 'Intermediate', 'Advanced', 'Expert')",
            name="questions_difficulty_check",
        ),
        CheckConstraint("timer_secs >= 0", name="questions_timer_check"),
        Index("questions_category_difficulty_idx", "category_id", "difficulty"),
    )


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    token = Column(String(36), nullable=False, unique=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    difficulty = Column(String(20), nullable=False)
    question_ids = Column(_json_column(), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    paused = Column(Boolean, nullable=False, default=False)
    xp_awarded = Column(Boolean, nullable=False, default=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True))

    answers = relationship(
        "QuizAnswer",
        order_by="QuizAnswer.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("score >= 0", name="quizzes_score_check"),
        Index("quizzes_user_category_idx", "user_id", "category_id"),
        Index("quizzes_category_end_idx", "category_id", "end_time"),
    )


class QuizAnswer(Base):
    __tablename__ = "quiz_answers"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False)
    question_id = Column(String(36), nullable=False)
    position = Column(Integer, nullable=False)
    answer = Column(Text, nullable=False)
    time_taken_secs = Column(Integer, nullable=False)
    correct = Column(Boolean, nullable=False)
    points = Column(Integer, nullable=False)
    answered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("quiz_answers_quiz_question_idx", "quiz_id", "question_id", unique=True),
    )


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("leaderboard_user_category_idx", "user_id", "category_id", unique=True),
        Index("leaderboard_category_rank_idx", "category_id", "rank"),
    )


# Validate a client-supplied identifier before it reaches the store.
def ensure_id(value: str, label: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError):
        raise InvalidReferenceError(f"Invalid {label} ID")
