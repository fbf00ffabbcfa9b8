import logging
from datetime import date

from sqlalchemy.orm import Session

from lab_registry.core.config import settings
from lab_registry.core.exceptions import (
    InvalidCredentials,
    InvalidIdentity,
    PrincipalNotFound,
    TokenInvalid,
)
from lab_registry.models.user import Role, User
from lab_registry.schemas.auth import (
    FacultyResetPasswordResponse,
    LoginResponse,
    PrincipalResponse,
    StudentInfo,
    VerifyDobResponse,
)
from lab_registry.services.credential_service import (
    get_user_by_email,
    get_user_by_id,
    hash_password,
    set_password,
    touch_last_login,
    verify_password,
)
from lab_registry.services.session_validator import AuthenticatedSession
from lab_registry.services.token_service import (
    TokenPurpose,
    issue_identity_verification_token,
    issue_session_token,
    validate_token,
)

logger = logging.getLogger(__name__)

_DUMMY_PASSWORD_HASH = hash_password("lab-registry-dummy-password-1")


def login(db: Session, email: str, password: str) -> LoginResponse:
    """
    이메일/비밀번호 로그인.
    계정 없음, 비밀번호 불일치, 비활성 계정 모두 같은 메시지로 거부한다.
    """
    user = get_user_by_email(db, email)
    if not user:
        # 없는 계정도 bcrypt 검증을 한 번 수행한다 (응답 시간 균일)
        verify_password(password, _DUMMY_PASSWORD_HASH)
        logger.info("Login failed")
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash) or not user.is_active:
        logger.info("Login failed")
        raise InvalidCredentials()

    token = issue_session_token(user)
    touch_last_login(db, user)
    logger.info(f"Login succeeded - principal: {user.id}, role: {user.role}")

    return LoginResponse(
        token=token,
        expires_in=settings.SESSION_TOKEN_EXPIRE_HOURS * 3600,
        user=PrincipalResponse.model_validate(user),
    )


def verify_identity(db: Session, email: str, dob: date) -> VerifyDobResponse:
    """
    생년월일 확인 후 비밀번호 재설정용 토큰 발급.
    어느 입력이 틀렸는지 드러내지 않도록 실패 응답은 하나로 통일한다.
    """
    user = get_user_by_email(db, email)
    if (
            not user
            or not user.is_active
            or user.role != Role.STUDENT.value
            or user.date_of_birth != dob
    ):
        logger.info("Identity verification failed")
        raise InvalidIdentity()

    reset_token = issue_identity_verification_token(user)
    logger.info(f"Identity verified - principal: {user.id}")
    return VerifyDobResponse(
        reset_token=reset_token,
        expires_in=settings.IDENTITY_TOKEN_EXPIRE_MINUTES * 60,
    )


def reset_password(db: Session, reset_token: str, new_password: str) -> None:
    # 소비 플래그를 저장하지 않으므로 만료 전까지는 재사용이 가능하다 (수용된 위험, DESIGN.md 참고)
    claims = validate_token(reset_token, TokenPurpose.IDENTITY_VERIFICATION)
    user = get_user_by_id(db, claims.principal_id)
    if not user or not user.is_active or user.email != claims.email:
        raise TokenInvalid("Invalid or expired reset token.")

    set_password(db, user, new_password)
    logger.info(f"Password reset via identity verification - principal: {user.id}")


def faculty_reset_password(
        db: Session,
        session: AuthenticatedSession,
        student_email: str,
        new_password: str,
) -> FacultyResetPasswordResponse:
    """ 교수자 경로: 생년월일 확인 없이 학생 비밀번호를 재설정한다. 역할 검사는 라우트 dependency 에서 끝난다. """
    student = get_user_by_email(db, student_email)
    if not student or student.role != Role.STUDENT.value or not student.is_active:
        raise PrincipalNotFound("Student not found.")

    set_password(db, student, new_password)
    logger.info(f"Faculty {session.principal.id} reset password for student {student.id}")
    return FacultyResetPasswordResponse(
        message=f"Password reset successfully for student {student.name}",
        student_info=StudentInfo(name=student.name, email=student.email, roll_no=student.roll_no),
    )


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect.")
    set_password(db, user, new_password)
    logger.info(f"Password changed - principal: {user.id}")
