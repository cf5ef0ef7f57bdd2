# Pydantic request/response schemas.
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from quizhub.models import Difficulty, QuestionType

# Request payload for sending an OTP to a phone number.
class StartVerificationRequest(BaseModel):
    phone_number: str

# Request payload for confirming an OTP and registering.
class ConfirmRegisterRequest(BaseModel):
    phone_number: str
    code: str
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    role: Optional[str] = None

# Request payload for logging in.
class LoginRequest(BaseModel):
    phone_number: str
    password: str

# Optional profile fields on a user.
class Profile(BaseModel):
    avatar: Optional[str] = None
    bio: Optional[str] = None
    preferred_language: Optional[str] = None
    country: Optional[str] = None

# Request payload for replacing a user's profile.
class UpdateProfileRequest(BaseModel):
    profile: Profile

# Public view of a user.
class UserOut(BaseModel):
    id: str
    phone_number: str
    username: str
    role: str
    profile: Profile
    xp: int
    quiz_history: List[str]

# Response model for a registration.
class RegisterOut(BaseModel):
    message: str
    user_id: str

# Response model for a login attempt.
class LoginOut(BaseModel):
    message: str
    token: Optional[str] = None
    user: Optional[UserOut] = None

# Response model for a category.
class CategoryOut(BaseModel):
    id: str
    name: str
    tags: List[str]
    parent_id: Optional[str]
    image_url: Optional[str]
    path: Optional[List[str]] = None

# Response wrapper for a created category.
class CreateCategoryOut(BaseModel):
    message: str
    category: CategoryOut

# Category paired with its cached top user.
class CategoryWithTopUserOut(CategoryOut):
    top_user: Optional[UserOut] = None

# Request payload for creating a question.
class QuestionCreate(BaseModel):
    category_id: str
    text: str = Field(..., min_length=1)
    question_type: QuestionType
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    explanation: str = ""
    difficulty: Difficulty
    timer_secs: int = Field(..., ge=0)
    tags: List[str] = Field(default_factory=list)

# Response model for a question, including the answer key.
class QuestionOut(BaseModel):
    id: str
    category_id: str
    text: str
    question_type: str
    options: List[str]
    correct_answer: str
    explanation: str
    difficulty: str
    timer_secs: int
    tags: List[str]

# Response wrapper for a created question.
class CreateQuestionOut(BaseModel):
    message: str
    question: QuestionOut

# Request payload for starting a quiz.
class StartQuizRequest(BaseModel):
    category_id: str
    difficulty: Difficulty
    num_questions: int = Field(..., ge=1)

# Request payload for submitting an answer.
class SubmitAnswerRequest(BaseModel):
    question_id: str
    answer: str
    time_taken: int = Field(..., ge=0)

# Request payload for pausing or resuming a quiz.
class PauseQuizRequest(BaseModel):
    paused: bool

# A recorded answer on a quiz.
class UserAnswerOut(BaseModel):
    question_id: str
    answer: str
    time_taken_secs: int
    correct: bool
    points: int

# Response model for a quiz attempt.
class QuizOut(BaseModel):
    id: str
    token: str
    user_id: str
    category_id: str
    difficulty: str
    status: str
    question_ids: List[str]
    questions: Optional[List[Dict[str, Any]]] = None
    answers: List[UserAnswerOut]
    start_time: str
    end_time: Optional[str]
    score: int
    paused: bool

# Response model for answer feedback.
class AnswerOut(BaseModel):
    feedback: Dict[str, Any]
    score: int
    status: str
    answered_count: int
    total_questions: int

# Response model for a finished quiz.
class FinishOut(BaseModel):
    quiz_id: str
    token: str
    score: int
    xp_earned: int

# One ranked row on a category leaderboard.
class LeaderboardEntryOut(BaseModel):
    user_id: str
    username: str
    category_id: str
    score: int
    rank: int
