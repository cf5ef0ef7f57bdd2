# Category and question storage.
import logging
import os
import uuid
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from quizhub.config import get_upload_dir
from quizhub.errors import ConflictError, InvalidInputError, NotFoundError
from quizhub.models import (
    Category,
    Difficulty,
    LeaderboardEntry,
    Question,
    QuestionType,
    Quiz,
    ensure_id,
)

MAX_CATEGORY_DEPTH = 64
IMAGE_CONTENT_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

logger = logging.getLogger("quizhub.content")


# Split a comma-separated tag string into trimmed, non-empty tags.
def parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


# Pick the stored extension from the upload name, falling back to its content type.
def image_extension(filename: Optional[str], content_type: Optional[str]) -> str:
    extension = os.path.splitext(filename or "")[1].lstrip(".").lower()
    if extension in IMAGE_EXTENSIONS:
        return extension
    extension = IMAGE_CONTENT_TYPES.get((content_type or "").split(";")[0].strip().lower())
    if extension is None:
        raise InvalidInputError("Unsupported image type")
    return extension


# Write uploaded image bytes to the upload dir and return the public URL.
def save_category_image(data: bytes, base_url: str, extension: str) -> str:
    upload_dir = get_upload_dir()
    os.makedirs(upload_dir, exist_ok=True)
    filename = f"{uuid.uuid4()}.{extension}"
    with open(os.path.join(upload_dir, filename), "wb") as handle:
        handle.write(data)
    return f"{base_url.rstrip('/')}/uploads/{filename}"


def create_category(
    db: Session,
    name: str,
    tags: List[str],
    parent_id: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Category:
    if not name.strip():
        raise InvalidInputError("Missing name")
    parent = None
    if parent_id:
        parent = get_category(db, parent_id)
    category = Category(
        name=name.strip(),
        tags=tags,
        parent_id=parent.id if parent else None,
        image_url=image_url,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("Created category %s (%s)", category.id, category.name)
    return category


def get_category(db: Session, category_id: str) -> Category:
    category = db.query(Category).filter(Category.id == ensure_id(category_id, "category")).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name, Category.id).all()


# Names from the root down to this category; parent cycles end the walk.
def category_path(db: Session, category: Category) -> List[str]:
    names = [category.name]
    visited = {category.id}
    parent_id = category.parent_id
    while parent_id and parent_id not in visited and len(visited) < MAX_CATEGORY_DEPTH:
        visited.add(parent_id)
        parent = db.query(Category).filter(Category.id == parent_id).first()
        if not parent:
            break
        names.append(parent.name)
        parent_id = parent.parent_id
    names.reverse()
    return names


# Refuse to delete a category that anything still points at.
def delete_category(db: Session, category_id: str) -> None:
    category = get_category(db, category_id)
    references = (
        ("questions", db.query(Question.id).filter(Question.category_id == category.id)),
        ("subcategories", db.query(Category.id).filter(Category.parent_id == category.id)),
        ("quizzes", db.query(Quiz.id).filter(Quiz.category_id == category.id)),
        (
            "leaderboard entries",
            db.query(LeaderboardEntry.id).filter(LeaderboardEntry.category_id == category.id),
        ),
    )
    for label, query in references:
        if query.first():
            raise ConflictError(f"Category still has {label}")
    db.delete(category)
    db.commit()


def create_question(db: Session, payload: Dict) -> Question:
    category = get_category(db, payload["category_id"])
    options = list(payload.get("options") or [])
    correct_answer = payload["correct_answer"]
    question_type = QuestionType(payload["question_type"])
    if question_type != QuestionType.CODE_PREDICTION and options and correct_answer not in options:
        raise InvalidInputError("correct_answer must match one of the options")
    question = Question(
        category_id=category.id,
        text=payload["text"],
        question_type=question_type.value,
        options=options,
        correct_answer=correct_answer,
        explanation=payload.get("explanation") or "",
        difficulty=Difficulty(payload["difficulty"]).value,
        timer_secs=payload["timer_secs"],
        tags=list(payload.get("tags") or []),
    )
    db.add(question)
    db.commit()
    db.refresh(question)
    return question


def get_question(db: Session, question_id: str) -> Question:
    question = db.query(Question).filter(Question.id == ensure_id(question_id, "question")).first()
    if not question:
        raise NotFoundError("Question not found")
    return question


def list_questions(db: Session, category_id: Optional[str] = None) -> List[Question]:
    query = db.query(Question)
    if category_id:
        query = query.filter(Question.category_id == ensure_id(category_id, "category"))
    return query.order_by(Question.category_id, Question.id).all()


def delete_question(db: Session, question_id: str) -> None:
    question = get_question(db, question_id)
    db.delete(question)
    db.commit()
