# Quiz attempt lifecycle: start, answer, pause/resume and finish.
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizhub import leaderboard, top_users, users
from quizhub.content import get_category
from quizhub.errors import (
    ConflictError,
    InsufficientContentError,
    InvalidInputError,
    InvalidReferenceError,
    InvalidStateError,
    NotFoundError,
)
from quizhub.models import Difficulty, Question, Quiz, QuizAnswer, ensure_id
from quizhub.scoring import compute_points, is_correct_answer

ACTIVE = "active"
PAUSED = "paused"
FINISHED = "finished"

logger = logging.getLogger("quizhub.quiz_sessions")


@dataclass
class AnswerResult:
    quiz: Quiz
    question: Question
    answer: QuizAnswer


@dataclass
class FinishResult:
    quiz: Quiz
    xp_earned: int


def quiz_state(quiz: Quiz) -> str:
    if quiz.end_time is not None:
        return FINISHED
    return PAUSED if quiz.paused else ACTIVE


def get_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).filter(Quiz.id == ensure_id(quiz_id, "quiz")).first()
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


# Questions of a quiz in their sampled order.
def quiz_questions(db: Session, quiz: Quiz) -> List[Question]:
    if not quiz.question_ids:
        return []
    found = db.query(Question).filter(Question.id.in_(quiz.question_ids)).all()
    by_id = {question.id: question for question in found}
    return [by_id[question_id] for question_id in quiz.question_ids if question_id in by_id]


# Sample exactly num_questions matching questions and persist a new active quiz.
def start_quiz(
    db: Session,
    user_id: str,
    category_id: str,
    difficulty: Difficulty,
    num_questions: int,
) -> Quiz:
    if num_questions < 1:
        raise InvalidInputError("num_questions must be at least 1")
    category = get_category(db, category_id)
    difficulty = Difficulty(difficulty)

    sampled = (
        db.query(Question.id)
        .filter(Question.category_id == category.id, Question.difficulty == difficulty.value)
        .order_by(func.random())
        .limit(num_questions)
        .all()
    )
    if len(sampled) < num_questions:
        raise InsufficientContentError("Not enough questions available")

    quiz = Quiz(
        user_id=user_id,
        category_id=category.id,
        difficulty=difficulty.value,
        question_ids=[row.id for row in sampled],
        score=0,
        paused=False,
        start_time=datetime.now(tz=timezone.utc),
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    logger.info(
        "Started quiz %s for user %s in category %s (%s, %s questions)",
        quiz.id,
        user_id,
        category.id,
        difficulty.value,
        num_questions,
    )
    return quiz


# Score one answer and append it; the score moves by an atomic increment.
def submit_answer(
    db: Session,
    quiz_id: str,
    question_id: str,
    answer_text: str,
    time_taken: int,
) -> AnswerResult:
    quiz = get_quiz(db, quiz_id)
    if quiz.end_time is not None:
        raise InvalidStateError("Cannot submit answer to a finished quiz")
    if quiz.paused:
        raise InvalidStateError("Cannot submit answer to a paused quiz")
    if time_taken < 0:
        raise InvalidInputError("time_taken must not be negative")

    question = db.query(Question).filter(Question.id == ensure_id(question_id, "question")).first()
    if not question:
        raise NotFoundError("Question not found")
    if question.id not in quiz.question_ids:
        raise InvalidReferenceError("Question is not part of this quiz")

    already_answered = (
        db.query(QuizAnswer.id)
        .filter(QuizAnswer.quiz_id == quiz.id, QuizAnswer.question_id == question.id)
        .first()
    )
    if already_answered:
        raise ConflictError("answer already submitted")

    correct = is_correct_answer(answer_text, question.correct_answer)
    points = compute_points(question.difficulty, correct, time_taken, question.timer_secs)

    position = (
        db.query(func.count(QuizAnswer.id)).filter(QuizAnswer.quiz_id == quiz.id).scalar() + 1
    )
    answer = QuizAnswer(
        quiz_id=quiz.id,
        question_id=question.id,
        position=position,
        answer=answer_text,
        time_taken_secs=time_taken,
        correct=correct,
        points=points,
    )
    db.add(answer)
    try:
        # Guarded on the quiz still being open and unpaused at write time.
        updated = (
            db.query(Quiz)
            .filter(Quiz.id == quiz.id, Quiz.end_time.is_(None), Quiz.paused.is_(False))
            .update({Quiz.score: Quiz.score + points}, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            raise InvalidStateError("Quiz is no longer accepting answers")
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("answer already submitted")

    db.refresh(quiz)
    db.refresh(answer)
    return AnswerResult(quiz=quiz, question=question, answer=answer)


# Set the paused flag only while the quiz is still open.
def pause_quiz(db: Session, quiz_id: str, paused: bool) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    updated = (
        db.query(Quiz)
        .filter(Quiz.id == quiz.id, Quiz.end_time.is_(None))
        .update({Quiz.paused: paused}, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        raise InvalidStateError("Cannot pause a finished quiz")
    db.commit()
    db.refresh(quiz)
    logger.info("Quiz %s %s", quiz.id, "paused" if paused else "resumed")
    return quiz


# Seal the quiz, then run the idempotent side-effect chain.
def finish_quiz(db: Session, quiz_id: str) -> FinishResult:
    quiz = get_quiz(db, quiz_id)
    # Only the first seal writes end_time; later calls keep it.
    sealed = (
        db.query(Quiz)
        .filter(Quiz.id == quiz.id, Quiz.end_time.is_(None))
        .update(
            {Quiz.end_time: datetime.now(tz=timezone.utc), Quiz.paused: False},
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(quiz)
    if sealed:
        logger.info("Finished quiz %s with score %s", quiz.id, quiz.score)
    else:
        logger.info("Replaying finish steps for quiz %s", quiz.id)

    users.add_quiz_history(db, quiz.user_id, quiz.token)
    xp_earned = _award_xp(db, quiz)
    top_users.recompute_top_user(db, quiz.category_id)
    leaderboard.update_leaderboard(db, quiz.user_id, quiz.category_id)

    db.refresh(quiz)
    return FinishResult(quiz=quiz, xp_earned=xp_earned)


# Award XP once per quiz; the flag flip and increment share a transaction.
def _award_xp(db: Session, quiz: Quiz) -> int:
    claimed = (
        db.query(Quiz)
        .filter(Quiz.id == quiz.id, Quiz.xp_awarded.is_(False))
        .update({Quiz.xp_awarded: True}, synchronize_session=False)
    )
    if claimed == 0:
        db.rollback()
        return 0
    xp_earned = quiz.score if quiz.score > 0 else 0
    if xp_earned > 0:
        users.add_xp(db, quiz.user_id, xp_earned)
    db.commit()
    return xp_earned


# Public question payload without answers or explanations.
def public_question(question: Question) -> Dict:
    return {
        "id": question.id,
        "text": question.text,
        "question_type": question.question_type,
        "options": list(question.options or []),
        "difficulty": question.difficulty,
        "timer_secs": question.timer_secs,
        "tags": list(question.tags or []),
    }


def answered_count(quiz: Quiz) -> int:
    return len(quiz.answers)

