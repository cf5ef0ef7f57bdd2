# Cached top scorer per category.
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from quizhub.content import get_category
from quizhub.models import Category, Quiz, User

logger = logging.getLogger("quizhub.top_users")


# Re-sum finished quizzes in the category and store the winner on the category.
def recompute_top_user(db: Session, category_id: str) -> Optional[str]:
    category = get_category(db, category_id)
    total = func.sum(Quiz.score).label("total_score")
    winner = (
        db.query(Quiz.user_id, total)
        .filter(Quiz.category_id == category.id, Quiz.end_time.isnot(None))
        .group_by(Quiz.user_id)
        .order_by(total.desc(), Quiz.user_id.asc())
        .first()
    )
    category.top_user_id = winner.user_id if winner else None
    db.commit()
    logger.info("Top user for category %s is %s", category.id, category.top_user_id)
    return category.top_user_id


def top_user_for_category(db: Session, category_id: str) -> Optional[User]:
    category = get_category(db, category_id)
    if not category.top_user_id:
        return None
    return db.query(User).filter(User.id == category.top_user_id).first()


def categories_with_top_users(db: Session) -> List[Tuple[Category, Optional[User]]]:
    return (
        db.query(Category, User)
        .outerjoin(User, User.id == Category.top_user_id)
        .order_by(Category.name, Category.id)
        .all()
    )
