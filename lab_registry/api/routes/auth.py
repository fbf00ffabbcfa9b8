import logging

from fastapi import APIRouter, Depends, Body, status
from sqlalchemy.orm import Session

from lab_registry.dependencies.auth import get_current_faculty, get_current_session
from lab_registry.dependencies.db import get_db
from lab_registry.models.user import Role
from lab_registry.schemas.auth import (
    ChangePasswordRequest,
    FacultyResetPasswordRequest,
    FacultyResetPasswordResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PrincipalCreate,
    PrincipalResponse,
    PrincipalStatusRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    ResetPasswordRequest,
    StudentRegisterRequest,
    VerifyDobRequest,
    VerifyDobResponse,
)
from lab_registry.services import auth_service, credential_service
from lab_registry.services.session_validator import AuthenticatedSession

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse, summary="로그인 (세션 토큰 발급)")
def login(
        login_req: LoginRequest = Body(...),
        db: Session = Depends(get_db)
):
    """
    이메일과 비밀번호로 인증하고 24시간짜리 세션 토큰을 발급합니다.
    실패 사유는 구분하지 않고 "Invalid email or password" 로 응답합니다.
    """
    return auth_service.login(db, login_req.email, login_req.password)


@router.post("/register", response_model=PrincipalResponse, status_code=status.HTTP_201_CREATED,
             summary="학생 회원가입")
def register_student(
        student_in: StudentRegisterRequest = Body(...),
        db: Session = Depends(get_db)
):
    principal_in = PrincipalCreate(**student_in.model_dump(), role=Role.STUDENT)
    return credential_service.create_principal(db, principal_in=principal_in)


@router.post("/verify-dob", response_model=VerifyDobResponse, summary="생년월일 확인 (재설정 토큰 발급)")
def verify_dob(
        req: VerifyDobRequest = Body(...),
        db: Session = Depends(get_db)
):
    """
    학생 이메일과 생년월일이 일치하면 10분짜리 비밀번호 재설정 토큰을 반환합니다.
    """
    return auth_service.verify_identity(db, req.email, req.dob)


@router.post("/reset-password", response_model=MessageResponse, summary="재설정 토큰으로 비밀번호 변경")
def reset_password(
        req: ResetPasswordRequest = Body(...),
        db: Session = Depends(get_db)
):
    auth_service.reset_password(db, req.reset_token, req.new_password)
    return MessageResponse(message="Password reset successfully")


@router.post("/faculty-reset-password", response_model=FacultyResetPasswordResponse,
             summary="교수자가 학생 비밀번호 재설정")
def faculty_reset_password(
        req: FacultyResetPasswordRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    return auth_service.faculty_reset_password(db, session, req.email, req.new_password)


@router.get("/verify", response_model=ProfileResponse, summary="세션 토큰 검증")
def verify_session(session: AuthenticatedSession = Depends(get_current_session)):
    # 검증만 하고 토큰을 갱신하지 않는다
    return ProfileResponse(
        user=PrincipalResponse.model_validate(session.principal),
        message="Token verified successfully",
    )


@router.get("/profile", response_model=ProfileResponse, summary="내 프로필 조회")
def get_profile(session: AuthenticatedSession = Depends(get_current_session)):
    return ProfileResponse(
        user=PrincipalResponse.model_validate(session.principal),
        message="Profile retrieved successfully",
    )


@router.put("/profile", response_model=ProfileResponse, summary="내 프로필 수정")
def update_profile(
        req: ProfileUpdateRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_session)
):
    user = credential_service.update_profile(
        db,
        session.principal,
        name=req.name,
        department=req.department,
    )
    return ProfileResponse(user=PrincipalResponse.model_validate(user), message="Profile updated successfully")


@router.post("/change-password", response_model=MessageResponse, summary="비밀번호 변경")
def change_password(
        req: ChangePasswordRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_session)
):
    auth_service.change_password(db, session.principal, req.current_password, req.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post("/users", response_model=PrincipalResponse, status_code=status.HTTP_201_CREATED,
             summary="계정 발급 (교수자)")
def provision_principal(
        principal_in: PrincipalCreate = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    """
    교수자가 학생 또는 교수자 계정을 생성합니다.
    """
    user = credential_service.create_principal(db, principal_in=principal_in)
    logger.info(f"Faculty {session.principal.id} provisioned principal {user.id}")
    return user


@router.patch("/users/{user_id}/status", response_model=PrincipalResponse, summary="계정 활성/비활성 (교수자)")
def set_principal_status(
        user_id: int,
        req: PrincipalStatusRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    """
    계정을 삭제하지 않고 비활성화합니다. 비활성 계정의 기존 토큰은 즉시 거부됩니다.
    """
    return credential_service.set_active(db, user_id, req.is_active)
