# FastAPI app, routes, and quiz flow handlers.
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import logging
import os
import sys

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizhub import content, leaderboard, quiz_sessions, top_users, users
from quizhub.config import get_base_url, get_upload_dir
from quizhub.database import Base, engine, get_db
from quizhub.errors import ForbiddenError, QuizHubError, UnauthorizedError
from quizhub.models import Category, Question, Quiz, Role, User
from quizhub.otp import TwilioVerifyClient, get_otp_client
from quizhub.schemas import (
    AnswerOut,
    CategoryOut,
    CategoryWithTopUserOut,
    ConfirmRegisterRequest,
    CreateCategoryOut,
    CreateQuestionOut,
    FinishOut,
    LeaderboardEntryOut,
    LoginOut,
    LoginRequest,
    PauseQuizRequest,
    Profile,
    QuestionCreate,
    QuestionOut,
    QuizOut,
    RegisterOut,
    StartQuizRequest,
    StartVerificationRequest,
    SubmitAnswerRequest,
    UpdateProfileRequest,
    UserAnswerOut,
    UserOut,
)
from quizhub.security import validate_access_token


# Create database tables on app startup.
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    os.makedirs(get_upload_dir(), exist_ok=True)
    yield


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(title="QuizHub API", lifespan=lifespan)
logger = logging.getLogger("quizhub")
bearer_scheme = HTTPBearer(auto_error=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount(
    "/uploads",
    StaticFiles(directory=get_upload_dir(), check_dir=False),
    name="uploads",
)


# Render service errors with the status class they carry.
@app.exception_handler(QuizHubError)
async def quizhub_error_handler(request: Request, exc: QuizHubError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Store failures surface as upstream errors.
@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("%s %s store error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Database error"},
    )


# Format datetimes as ISO-8601 strings with UTC fallback.
def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


# Resolve bearer token claims or reject the request.
def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Not authenticated")
    claims = validate_access_token(credentials.credentials)
    if claims is None:
        raise UnauthorizedError("Invalid or expired token")
    return claims


def require_admin(claims: Dict[str, Any] = Depends(get_current_claims)) -> Dict[str, Any]:
    if claims.get("role") != Role.ADMIN.value:
        raise ForbiddenError("Admin role required")
    return claims


def is_admin(claims: Dict[str, Any]) -> bool:
    return claims.get("role") == Role.ADMIN.value


# Allow quiz mutations only by the quiz owner or an admin.
def ensure_quiz_access(quiz: Quiz, claims: Dict[str, Any]) -> None:
    if quiz.user_id != claims["sub"] and not is_admin(claims):
        raise ForbiddenError("Quiz belongs to another user")


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        phone_number=user.phone_number,
        username=user.username,
        role=user.role,
        profile=Profile(**(user.profile or {})),
        xp=user.xp,
        quiz_history=user.quiz_history,
    )


def category_out(category: Category, path: Optional[List[str]] = None) -> CategoryOut:
    return CategoryOut(
        id=category.id,
        name=category.name,
        tags=list(category.tags or []),
        parent_id=category.parent_id,
        image_url=category.image_url,
        path=path,
    )


def question_out(question: Question) -> QuestionOut:
    return QuestionOut(
        id=question.id,
        category_id=question.category_id,
        text=question.text,
        question_type=question.question_type,
        options=list(question.options or []),
        correct_answer=question.correct_answer,
        explanation=question.explanation,
        difficulty=question.difficulty,
        timer_secs=question.timer_secs,
        tags=list(question.tags or []),
    )


def quiz_out(quiz: Quiz, questions: Optional[List[Question]] = None) -> QuizOut:
    return QuizOut(
        id=quiz.id,
        token=quiz.token,
        user_id=quiz.user_id,
        category_id=quiz.category_id,
        difficulty=quiz.difficulty,
        status=quiz_sessions.quiz_state(quiz),
        question_ids=list(quiz.question_ids),
        questions=(
            [quiz_sessions.public_question(question) for question in questions]
            if questions is not None
            else None
        ),
        answers=[
            UserAnswerOut(
                question_id=answer.question_id,
                answer=answer.answer,
                time_taken_secs=answer.time_taken_secs,
                correct=answer.correct,
                points=answer.points,
            )
            for answer in quiz.answers
        ],
        start_time=to_iso(quiz.start_time),
        end_time=to_iso(quiz.end_time) if quiz.end_time else None,
        score=quiz.score,
        paused=quiz.paused,
    )


def leaderboard_out(rows) -> List[LeaderboardEntryOut]:
    return [
        LeaderboardEntryOut(
            user_id=entry.user_id,
            username=username,
            category_id=entry.category_id,
            score=entry.score,
            rank=entry.rank,
        )
        for entry, username in rows
    ]


def request_base_url(request: Request) -> str:
    return get_base_url() or str(request.base_url).rstrip("/")


@app.get("/health")
def health_check():
    return {"status": "ok"}

# Send an OTP to the phone number.
@app.post("/start_verification")
def start_verification(
    payload: StartVerificationRequest,
    otp_client: TwilioVerifyClient = Depends(get_otp_client),
):
    users.start_phone_verification(otp_client, payload.phone_number)
    return {"message": "OTP sent"}

# Check the OTP and create the account.
@app.post("/confirm_register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
def confirm_register(
    payload: ConfirmRegisterRequest,
    db: Session = Depends(get_db),
    otp_client: TwilioVerifyClient = Depends(get_otp_client),
):
    user = users.verify_and_register(
        db,
        otp_client,
        payload.phone_number,
        payload.code,
        payload.username,
        payload.password,
        users.parse_role(payload.role),
    )
    return RegisterOut(message="User registered", user_id=user.id)

# Verify credentials and return a signed token.
@app.post("/login", response_model=LoginOut)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    try:
        user, token = users.login(db, payload.phone_number, payload.password)
    except UnauthorizedError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content=LoginOut(message=exc.detail).model_dump(),
        )
    return LoginOut(message="Login successful", token=token, user=user_out(user))

@app.get("/users/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    return user_out(users.get_user(db, user_id))

@app.put("/users/{user_id}/profile", response_model=UserOut)
def update_profile(
    user_id: str,
    payload: UpdateProfileRequest,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    if claims["sub"] != user_id and not is_admin(claims):
        raise ForbiddenError("Cannot update another user's profile")
    user = users.update_profile(db, user_id, payload.profile.model_dump())
    return user_out(user)

# Create a category from a multipart form, storing the optional image.
@app.post(
    "/admin/categories",
    response_model=CreateCategoryOut,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    request: Request,
    name: str = Form(...),
    tags: str = Form(""),
    parent_id: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    image_url = None
    if image is not None and image.filename:
        extension = content.image_extension(image.filename, image.content_type)
        image_url = content.save_category_image(
            image.file.read(), request_base_url(request), extension
        )
    category = content.create_category(
        db,
        name,
        content.parse_tags(tags),
        parent_id=parent_id or None,
        image_url=image_url,
    )
    return CreateCategoryOut(
        message="Category created successfully",
        category=category_out(category),
    )

@app.get("/admin/categories", response_model=List[CategoryOut])
def list_categories(
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    return [category_out(category) for category in content.list_categories(db)]

@app.get("/admin/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    category = content.get_category(db, category_id)
    return category_out(category, path=content.category_path(db, category))

@app.delete("/admin/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    content.delete_category(db, category_id)

@app.post(
    "/admin/questions",
    response_model=CreateQuestionOut,
    status_code=status.HTTP_201_CREATED,
)
def create_question(
    payload: QuestionCreate,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    question = content.create_question(db, payload.model_dump())
    return CreateQuestionOut(
        message="Question created successfully",
        question=question_out(question),
    )

@app.get("/admin/questions", response_model=List[QuestionOut])
def list_questions(
    category_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    return [question_out(question) for question in content.list_questions(db, category_id)]

@app.get("/admin/questions/{question_id}", response_model=QuestionOut)
def get_question(
    question_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    return question_out(content.get_question(db, question_id))

@app.delete("/admin/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(
    question_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    content.delete_question(db, question_id)

# Return the cached top user for a category.
@app.get("/admin/categories/{category_id}/top_user", response_model=UserOut)
def top_user_for_category(
    category_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    user = top_users.top_user_for_category(db, category_id)
    if user is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "No user found"},
        )
    return user_out(user)

@app.get("/admin/categories_with_top_users", response_model=List[CategoryWithTopUserOut])
def categories_with_top_users(
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    results: List[CategoryWithTopUserOut] = []
    for category, user in top_users.categories_with_top_users(db):
        results.append(
            CategoryWithTopUserOut(
                **category_out(category).model_dump(),
                top_user=user_out(user) if user else None,
            )
        )
    return results

# Rebuild a category leaderboard from finished quizzes.
@app.post(
    "/admin/categories/{category_id}/leaderboard/rebuild",
    response_model=List[LeaderboardEntryOut],
)
def rebuild_leaderboard(
    category_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(require_admin),
):
    leaderboard.rebuild_leaderboard(db, category_id)
    return leaderboard_out(leaderboard.get_leaderboard(db, category_id))

# Sample questions and open a new quiz for the caller.
@app.post("/quiz/start", response_model=QuizOut, status_code=status.HTTP_201_CREATED)
def start_quiz(
    payload: StartQuizRequest,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    quiz = quiz_sessions.start_quiz(
        db,
        claims["sub"],
        payload.category_id,
        payload.difficulty,
        payload.num_questions,
    )
    return quiz_out(quiz, quiz_sessions.quiz_questions(db, quiz))

@app.get("/quiz/{quiz_id}", response_model=QuizOut)
def get_quiz(
    quiz_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    quiz = quiz_sessions.get_quiz(db, quiz_id)
    ensure_quiz_access(quiz, claims)
    return quiz_out(quiz, quiz_sessions.quiz_questions(db, quiz))

# Record an answer and return feedback with the running score.
@app.post("/quiz/{quiz_id}/answer", response_model=AnswerOut)
def submit_answer(
    quiz_id: str,
    payload: SubmitAnswerRequest,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    ensure_quiz_access(quiz_sessions.get_quiz(db, quiz_id), claims)
    result = quiz_sessions.submit_answer(
        db, quiz_id, payload.question_id, payload.answer, payload.time_taken
    )
    feedback = {
        "question_id": result.question.id,
        "answer": result.answer.answer,
        "correct": result.answer.correct,
        "points": result.answer.points,
        "correct_answer": result.question.correct_answer,
        "explanation": result.question.explanation,
    }
    return AnswerOut(
        feedback=feedback,
        score=result.quiz.score,
        status=quiz_sessions.quiz_state(result.quiz),
        answered_count=quiz_sessions.answered_count(result.quiz),
        total_questions=len(result.quiz.question_ids),
    )

@app.post("/quiz/{quiz_id}/pause", response_model=QuizOut)
def pause_quiz(
    quiz_id: str,
    payload: PauseQuizRequest,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    ensure_quiz_access(quiz_sessions.get_quiz(db, quiz_id), claims)
    return quiz_out(quiz_sessions.pause_quiz(db, quiz_id, payload.paused))

# Seal the quiz and update history, XP, top user and leaderboard.
@app.post("/quiz/{quiz_id}/finish", response_model=FinishOut)
def finish_quiz(
    quiz_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    ensure_quiz_access(quiz_sessions.get_quiz(db, quiz_id), claims)
    result = quiz_sessions.finish_quiz(db, quiz_id)
    return FinishOut(
        quiz_id=result.quiz.id,
        token=result.quiz.token,
        score=result.quiz.score,
        xp_earned=result.xp_earned,
    )

@app.get("/quiz/leaderboard/{category_id}", response_model=List[LeaderboardEntryOut])
def get_leaderboard(
    category_id: str,
    db: Session = Depends(get_db),
    claims: Dict[str, Any] = Depends(get_current_claims),
):
    return leaderboard_out(leaderboard.get_leaderboard(db, category_id))
