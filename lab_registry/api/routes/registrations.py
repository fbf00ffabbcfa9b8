from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Body, Query, Request, status
from sqlalchemy.orm import Session

from lab_registry.core.exceptions import ValidationError
from lab_registry.dependencies.auth import get_current_faculty, get_current_student
from lab_registry.dependencies.db import get_db
from lab_registry.models.registration import RegistrationStatus
from lab_registry.schemas.registration import (
    EndSessionRequest,
    LabStatsResponse,
    NotesUpdateRequest,
    RegistrationCreateRequest,
    RegistrationCreateResponse,
    RegistrationFilters,
    RegistrationListResponse,
    RegistrationResponse,
    SweepResponse,
    WorkstationUtilizationResponse,
    check_lab_id,
)
from lab_registry.services import conflict_resolver, registration_service
from lab_registry.services.session_validator import AuthenticatedSession
from lab_registry.utils.request_utils import get_client_ip

router = APIRouter()


# =========================
# 학생 API
# =========================

@router.post("", response_model=RegistrationCreateResponse, status_code=status.HTTP_201_CREATED,
             summary="랩 좌석 등록")
def create_registration(
        request: Request,
        req: RegistrationCreateRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_student)
):
    """
    학생이 현재 앉은 워크스테이션을 등록합니다.
    - 이미 active 등록이 있으면 409 DUPLICATE_REGISTRATION (기존 좌석 정보 포함)
    - 다른 학생이 사용 중인 좌석이면 409 SYSTEM_IN_USE
    - started_at 이 허용 범위를 벗어나면 422 STALE_TIMESTAMP
    """
    record = conflict_resolver.create_registration(
        db, session.principal, req, ip_address=get_client_ip(request)
    )
    return RegistrationCreateResponse(registration=RegistrationResponse.from_record(record))


@router.get("/me/active", response_model=Optional[RegistrationResponse], summary="내 active 등록 조회")
def get_my_active_registration(
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_student)
):
    record = registration_service.get_active_registration(db, session.principal.id)
    return RegistrationResponse.from_record(record) if record else None


# =========================
# 교수자 API
# =========================

@router.get("", response_model=RegistrationListResponse, summary="등록 목록 조회 (교수자)")
def list_registrations(
        date: Optional[date] = Query(None, description="랩 현지 날짜 (YYYY-MM-DD)"),
        lab_id: Optional[str] = Query(None),
        roll_no: Optional[str] = Query(None),
        status_: Optional[RegistrationStatus] = Query(None, alias="status"),
        start_date: Optional[datetime] = Query(None),
        end_date: Optional[datetime] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    filters = RegistrationFilters(
        date=date,
        lab_id=lab_id,
        roll_no=roll_no,
        status=status_,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    items, pagination = registration_service.list_registrations(db, filters)
    return RegistrationListResponse(
        registrations=[RegistrationResponse.from_record(r) for r in items],
        pagination=pagination,
    )


@router.post("/sweep", response_model=SweepResponse, summary="방치된 세션 일괄 중단 처리 (교수자)")
def sweep_abandoned(
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    records = registration_service.sweep_abandoned_sessions(db)
    return SweepResponse(interrupted=[RegistrationResponse.from_record(r) for r in records])


@router.get("/stats/labs", response_model=LabStatsResponse, summary="랩별 통계 (교수자)")
def get_lab_stats(
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    return LabStatsResponse(labs=registration_service.get_lab_stats(db))


@router.get("/stats/labs/{lab_id}", response_model=WorkstationUtilizationResponse,
            summary="랩 내 워크스테이션 사용률 (교수자)")
def get_workstation_utilization(
        lab_id: str,
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    try:
        lab_id = check_lab_id(lab_id)
    except ValueError as e:
        raise ValidationError.single("lab_id", str(e))
    return WorkstationUtilizationResponse(
        lab_id=lab_id,
        workstations=registration_service.get_workstation_utilization(db, lab_id),
    )


@router.post("/{record_id}/end", response_model=RegistrationResponse, summary="세션 종료 (교수자)")
def end_session(
        record_id: int,
        req: Optional[EndSessionRequest] = Body(None),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    """
    active 등록을 completed 로 전이합니다. 이미 종료된 등록은 409 INVALID_STATE_TRANSITION.
    """
    record = registration_service.end_session(db, record_id, req.notes if req else None)
    return RegistrationResponse.from_record(record)


@router.post("/{record_id}/interrupt", response_model=RegistrationResponse, summary="세션 중단 처리 (교수자)")
def interrupt_session(
        record_id: int,
        req: Optional[EndSessionRequest] = Body(None),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    record = registration_service.interrupt_session(db, record_id, req.notes if req else None)
    return RegistrationResponse.from_record(record)


@router.patch("/{record_id}/notes", response_model=RegistrationResponse, summary="메모 수정 (교수자)")
def update_notes(
        record_id: int,
        req: NotesUpdateRequest = Body(...),
        db: Session = Depends(get_db),
        session: AuthenticatedSession = Depends(get_current_faculty)
):
    record = registration_service.update_notes(db, record_id, req.notes)
    return RegistrationResponse.from_record(record)
