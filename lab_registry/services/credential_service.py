import logging
from datetime import date
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lab_registry.core.config import settings
from lab_registry.core.exceptions import (
    ConfigurationError,
    EmailAlreadyRegistered,
    PrincipalNotFound,
    RollNoAlreadyRegistered,
    ValidationError,
)
from lab_registry.models.user import Role, User
from lab_registry.schemas.auth import PrincipalCreate
from lab_registry.utils.timeutils import age_on, utcnow

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # 저장된 해시 형식이 깨진 경우 로그인 실패로 취급
        logger.warning("Stored password hash could not be parsed")
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_roll_no(db: Session, roll_no: str) -> Optional[User]:
    return db.query(User).filter(User.roll_no == roll_no.upper()).first()


def validate_principal_fields(
        role: Role,
        roll_no: Optional[str],
        date_of_birth: Optional[date],
        today: Optional[date] = None,
) -> None:
    """
    역할별 필수 필드와 나이 범위를 검사한다.
    학생은 roll_no, date_of_birth 가 필수이고 교수자는 둘 다 가질 수 없다.
    """
    errors = []
    if role == Role.STUDENT:
        if not roll_no:
            errors.append({"field": "roll_no", "message": "Roll number is required for students"})
        if date_of_birth is None:
            errors.append({"field": "date_of_birth", "message": "Date of birth is required for students"})
        else:
            age = age_on(date_of_birth, today or utcnow().date())
            if not settings.MIN_STUDENT_AGE <= age <= settings.MAX_STUDENT_AGE:
                errors.append({
                    "field": "date_of_birth",
                    "message": f"Age must be between {settings.MIN_STUDENT_AGE} and {settings.MAX_STUDENT_AGE}",
                })
    else:
        if roll_no:
            errors.append({"field": "roll_no", "message": "Roll number is only allowed for students"})
        if date_of_birth is not None:
            errors.append({"field": "date_of_birth", "message": "Date of birth is only allowed for students"})
    if errors:
        raise ValidationError(errors)


def create_principal(db: Session, *, principal_in: PrincipalCreate) -> User:
    email = normalize_email(principal_in.email)
    validate_principal_fields(principal_in.role, principal_in.roll_no, principal_in.date_of_birth)

    if get_user_by_email(db, email):
        raise EmailAlreadyRegistered(email=email)
    if principal_in.roll_no and get_user_by_roll_no(db, principal_in.roll_no):
        raise RollNoAlreadyRegistered(roll_no=principal_in.roll_no)

    db_user = User(
        name=principal_in.name.strip(),
        email=email,
        password_hash=hash_password(principal_in.password),
        role=principal_in.role.value,
        roll_no=principal_in.roll_no,
        date_of_birth=principal_in.date_of_birth,
        department=principal_in.department,
        is_active=True,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        # 동시 가입 경합: 유니크 제약이 최종 판정
        db.rollback()
        if get_user_by_email(db, email):
            raise EmailAlreadyRegistered(email=email)
        raise RollNoAlreadyRegistered(roll_no=principal_in.roll_no)
    db.refresh(db_user)
    logger.info(f"Principal created - id: {db_user.id}, role: {db_user.role}")
    return db_user


def update_profile(
        db: Session,
        user: User,
        *,
        name: Optional[str] = None,
        department: Optional[str] = None,
) -> User:
    if name:
        user.name = name.strip()
    if department is not None:
        user.department = department
    db.commit()
    db.refresh(user)
    return user


def set_password(db: Session, user: User, new_password: str) -> None:
    user.password_hash = hash_password(new_password)
    db.commit()


def touch_last_login(db: Session, user: User) -> None:
    user.last_login = utcnow()
    db.commit()


def set_active(db: Session, user_id: int, is_active: bool) -> User:
    """ 소프트 비활성화. 이력은 그대로 남는다. """
    user = get_user_by_id(db, user_id)
    if not user:
        raise PrincipalNotFound()
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info(f"Principal {user.id} is_active set to {is_active}")
    return user


def ensure_bootstrap_faculty(db: Session) -> Optional[User]:
    """
    .env 에 지정된 초기 교수자 계정을 만든다. 비밀번호는 bcrypt 해시로만 받는다.
    이미 있으면 아무것도 하지 않는다.
    """
    email = settings.BOOTSTRAP_FACULTY_EMAIL
    password_hash = settings.BOOTSTRAP_FACULTY_PASSWORD_HASH
    if not email or not password_hash:
        return None
    if not bcrypt.identify(password_hash):
        raise ConfigurationError("BOOTSTRAP_FACULTY_PASSWORD_HASH must be a bcrypt hash.")

    existing = get_user_by_email(db, email)
    if existing:
        return existing

    faculty = User(
        name=settings.BOOTSTRAP_FACULTY_NAME,
        email=normalize_email(email),
        password_hash=password_hash,
        role=Role.FACULTY.value,
        is_active=True,
    )
    db.add(faculty)
    db.commit()
    db.refresh(faculty)
    logger.info(f"Bootstrap faculty account created - id: {faculty.id}")
    return faculty
