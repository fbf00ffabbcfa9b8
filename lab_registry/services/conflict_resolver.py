"""
등록 생성 시점의 충돌 판정.

중복 여부는 애플리케이션에서 먼저 조회하지 않는다 (check-then-act 경합).
INSERT 를 먼저 시도하고, active 상태 부분 유니크 인덱스가 거부하면
그때 충돌 레코드를 조회해 어떤 충돌인지 설명한다.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lab_registry.core.config import settings
from lab_registry.core.exceptions import (
    DuplicateRegistration,
    LabRegistryError,
    StaleTimestamp,
    ValidationError,
    WorkstationInUse,
)
from lab_registry.models.registration import Registration, RegistrationStatus
from lab_registry.models.user import User
from lab_registry.schemas.registration import RegistrationCreateRequest
from lab_registry.utils.timeutils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


def check_started_at(started_at: datetime, now: datetime) -> None:
    earliest = now - timedelta(minutes=settings.REGISTRATION_MAX_AGE_MINUTES)
    latest = now + timedelta(seconds=settings.REGISTRATION_FUTURE_SKEW_SECONDS)
    if started_at < earliest:
        message = f"Timestamp must be within the last {settings.REGISTRATION_MAX_AGE_MINUTES} minutes."
    elif started_at > latest:
        message = f"Timestamp cannot be more than {settings.REGISTRATION_FUTURE_SKEW_SECONDS} seconds in the future."
    else:
        return
    raise StaleTimestamp(
        message,
        started_at=started_at.isoformat(),
        accepted_from=earliest.isoformat(),
        accepted_until=latest.isoformat(),
    )


def find_active_for_student(db: Session, student_id: int) -> Optional[Registration]:
    return db.query(Registration).filter(
        Registration.student_id == student_id,
        Registration.status == RegistrationStatus.ACTIVE.value,
    ).first()


def find_active_for_workstation(db: Session, lab_id: str, workstation_id: str) -> Optional[Registration]:
    return db.query(Registration).filter(
        Registration.lab_id == lab_id,
        Registration.workstation_id == workstation_id,
        Registration.status == RegistrationStatus.ACTIVE.value,
    ).first()


def _explain_conflict(db: Session, student_id: int, lab_id: str, workstation_id: str) -> LabRegistryError:
    # 학생 충돌이 좌석 충돌보다 우선한다
    existing = find_active_for_student(db, student_id)
    if existing:
        return DuplicateRegistration(
            f"You already have an active registration at {existing.lab_id}/{existing.workstation_id}.",
            record_id=existing.id,
            lab_id=existing.lab_id,
            workstation_id=existing.workstation_id,
            started_at=existing.started_at.isoformat(),
        )

    holder = find_active_for_workstation(db, lab_id, workstation_id)
    return WorkstationInUse(
        f"{lab_id}/{workstation_id} is already in use.",
        lab_id=lab_id,
        workstation_id=workstation_id,
        since=holder.started_at.isoformat() if holder else None,
    )


def insert_active_registration(db: Session, record: Registration) -> Registration:
    """ 유니크 인덱스가 보장하는 원자적 insert-or-reject """
    student_id, lab_id, workstation_id = record.student_id, record.lab_id, record.workstation_id
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        conflict = _explain_conflict(db, student_id, lab_id, workstation_id)
        logger.info(f"Registration rejected - student: {student_id}, seat: {lab_id}/{workstation_id}, reason: {conflict.code}")
        raise conflict
    db.refresh(record)
    return record


def create_registration(
        db: Session,
        student: User,
        request: RegistrationCreateRequest,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
) -> Registration:
    now = now or utcnow()

    if request.roll_no != student.roll_no:
        raise ValidationError.single("roll_no", "Roll number does not match your account")

    started_at = to_naive_utc(request.started_at) if request.started_at else now
    check_started_at(started_at, now)

    record = Registration(
        student_id=student.id,
        student_name=student.name,
        roll_no=request.roll_no,
        lab_id=request.lab_id,
        workstation_id=request.workstation_id,
        started_at=started_at,
        machine_fingerprint=request.machine_fingerprint,
        client_system_info=request.client_system_info.model_dump(exclude_none=True),
        ip_address=ip_address,
        status=RegistrationStatus.ACTIVE.value,
    )
    record = insert_active_registration(db, record)
    logger.info(f"Registration created - id: {record.id}, student: {student.id}, seat: {record.lab_id}/{record.workstation_id}")
    return record
