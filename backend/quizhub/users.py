# Registration, login and per-user counters.
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizhub.errors import ConflictError, InvalidInputError, NotFoundError, UnauthorizedError
from quizhub.models import Role, User, UserQuizHistory, ensure_id
from quizhub.otp import TwilioVerifyClient, ensure_e164
from quizhub.security import create_access_token, generate_salt, hash_password, verify_password

PROFILE_FIELDS = ("avatar", "bio", "preferred_language", "country")

logger = logging.getLogger("quizhub.users")


def empty_profile() -> Dict[str, Optional[str]]:
    return {field: None for field in PROFILE_FIELDS}


def parse_role(value: Optional[str]) -> Role:
    if value and value.strip().lower() == "admin":
        return Role.ADMIN
    return Role.USER


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == ensure_id(user_id, "user")).first()
    if not user:
        raise NotFoundError(f"User with ID {user_id} not found")
    return user


def start_phone_verification(otp_client: TwilioVerifyClient, phone_number: str) -> None:
    otp_client.send_verification(ensure_e164(phone_number))


# Check the OTP, enforce uniqueness and persist a new user.
def verify_and_register(
    db: Session,
    otp_client: TwilioVerifyClient,
    phone_number: str,
    code: str,
    username: str,
    password: str,
    role: Role = Role.USER,
) -> User:
    phone = ensure_e164(phone_number)
    if not username.strip():
        raise InvalidInputError("username must not be empty")
    if not password:
        raise InvalidInputError("password must not be empty")
    if not otp_client.check_verification(phone, code):
        raise InvalidInputError("Invalid OTP")

    if db.query(User).filter(User.phone_number == phone).first():
        raise ConflictError("Phone Number already in use")
    if db.query(User).filter(User.username == username).first():
        raise ConflictError("Username already in use")

    salt = generate_salt()
    user = User(
        phone_number=phone,
        username=username,
        password_hash=hash_password(password, salt),
        password_salt=salt,
        role=role.value,
        profile=empty_profile(),
        xp=0,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Phone Number or username already in use")
    db.refresh(user)
    logger.info("Registered user %s with role %s", user.id, user.role)
    return user


# Verify credentials and issue an access token.
def login(db: Session, phone_number: str, password: str) -> Tuple[User, str]:
    user = db.query(User).filter(User.phone_number == phone_number.strip()).first()
    if not user:
        raise UnauthorizedError("User not found")
    if not verify_password(user.password_hash, user.password_salt, password):
        raise UnauthorizedError("Invalid password")
    return user, create_access_token(user.id, user.role)


def update_profile(db: Session, user_id: str, profile: Dict[str, Optional[str]]) -> User:
    user = get_user(db, user_id)
    user.profile = {field: profile.get(field) for field in PROFILE_FIELDS}
    db.commit()
    db.refresh(user)
    return user


# Record a finished quiz token once; returns False when it was already recorded.
def add_quiz_history(db: Session, user_id: str, quiz_token: str) -> bool:
    existing = (
        db.query(UserQuizHistory.id)
        .filter(UserQuizHistory.quiz_token == quiz_token)
        .first()
    )
    if existing:
        return False
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError(f"User with ID {user_id} not found")
    next_position = (
        db.query(func.coalesce(func.max(UserQuizHistory.position), 0))
        .filter(UserQuizHistory.user_id == user_id)
        .scalar()
        + 1
    )
    db.add(UserQuizHistory(user_id=user_id, quiz_token=quiz_token, position=next_position))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


# Atomically add XP without reading the current total.
def add_xp(db: Session, user_id: str, amount: int) -> None:
    updated = (
        db.query(User)
        .filter(User.id == user_id)
        .update({User.xp: User.xp + amount}, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        raise NotFoundError(f"User with ID {user_id} not found")
