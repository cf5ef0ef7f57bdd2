# Per-category cumulative scores and rank assignment.
import logging
from typing import Dict, List, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizhub.models import LeaderboardEntry, Quiz, User, ensure_id

logger = logging.getLogger("quizhub.leaderboard")


# Sum of finished quiz scores per user in a category.
def finished_score_totals(db: Session, category_id: str) -> Dict[str, int]:
    rows = (
        db.query(Quiz.user_id, func.coalesce(func.sum(Quiz.score), 0))
        .filter(Quiz.category_id == category_id, Quiz.end_time.isnot(None))
        .group_by(Quiz.user_id)
        .all()
    )
    return {user_id: int(total) for user_id, total in rows}


def _finished_score_total(db: Session, user_id: str, category_id: str) -> int:
    total = (
        db.query(func.coalesce(func.sum(Quiz.score), 0))
        .filter(
            Quiz.user_id == user_id,
            Quiz.category_id == category_id,
            Quiz.end_time.isnot(None),
        )
        .scalar()
    )
    return int(total or 0)


def _upsert_entry(db: Session, user_id: str, category_id: str, score: int) -> LeaderboardEntry:
    entry = (
        db.query(LeaderboardEntry)
        .filter(LeaderboardEntry.user_id == user_id, LeaderboardEntry.category_id == category_id)
        .first()
    )
    if entry is None:
        entry = LeaderboardEntry(user_id=user_id, category_id=category_id, score=score, rank=0)
        db.add(entry)
    else:
        entry.score = score
    db.flush()
    return entry


# Assign ranks 1..N by score descending; ties fall back to user id order.
def rerank_category(db: Session, category_id: str) -> List[LeaderboardEntry]:
    entries = (
        db.query(LeaderboardEntry)
        .filter(LeaderboardEntry.category_id == category_id)
        .order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.user_id.asc())
        .all()
    )
    for position, entry in enumerate(entries, start=1):
        entry.rank = position
    return entries


# Recompute one user's entry from finished quizzes, then re-rank the category.
def update_leaderboard(db: Session, user_id: str, category_id: str) -> LeaderboardEntry:
    score = _finished_score_total(db, user_id, category_id)
    try:
        entry = _upsert_entry(db, user_id, category_id, score)
    except IntegrityError:
        # A concurrent finish inserted the row first; retry as an update.
        db.rollback()
        entry = _upsert_entry(db, user_id, category_id, score)
    rerank_category(db, category_id)
    db.commit()
    db.refresh(entry)
    logger.info(
        "Leaderboard updated for user %s in category %s: score=%s rank=%s",
        user_id,
        category_id,
        entry.score,
        entry.rank,
    )
    return entry


# Rebuild every entry of a category from the finished quizzes.
def rebuild_leaderboard(db: Session, category_id: str) -> List[LeaderboardEntry]:
    category_id = ensure_id(category_id, "category")
    totals = finished_score_totals(db, category_id)
    existing = (
        db.query(LeaderboardEntry)
        .filter(LeaderboardEntry.category_id == category_id)
        .all()
    )
    for entry in existing:
        entry.score = totals.pop(entry.user_id, 0)
    for user_id, score in totals.items():
        db.add(LeaderboardEntry(user_id=user_id, category_id=category_id, score=score, rank=0))
    db.flush()
    entries = rerank_category(db, category_id)
    db.commit()
    return entries


def get_leaderboard(db: Session, category_id: str) -> List[Tuple[LeaderboardEntry, str]]:
    category_id = ensure_id(category_id, "category")
    return (
        db.query(LeaderboardEntry, User.username)
        .join(User, User.id == LeaderboardEntry.user_id)
        .filter(LeaderboardEntry.category_id == category_id)
        .order_by(LeaderboardEntry.rank.asc(), LeaderboardEntry.user_id.asc())
        .all()
    )
