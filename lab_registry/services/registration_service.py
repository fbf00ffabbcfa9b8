import logging
import math
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session

from lab_registry.core.config import settings
from lab_registry.core.exceptions import InvalidStateTransition, RegistrationNotFound
from lab_registry.models.registration import Registration, RegistrationStatus
from lab_registry.schemas.registration import (
    LabStats,
    Pagination,
    RegistrationFilters,
    WorkstationUtilization,
)
from lab_registry.services.conflict_resolver import find_active_for_student
from lab_registry.utils.timeutils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


def get_registration(db: Session, record_id: int) -> Registration:
    record = db.query(Registration).filter(Registration.id == record_id).first()
    if not record:
        raise RegistrationNotFound()
    return record


def get_active_registration(db: Session, student_id: int) -> Optional[Registration]:
    return find_active_for_student(db, student_id)


def session_duration_seconds(started_at: datetime, ended_at: datetime) -> int:
    """ 0 ~ MAX_SESSION_DURATION_SECONDS 범위로 제한 """
    elapsed = int((ended_at - started_at).total_seconds())
    return min(max(elapsed, 0), settings.MAX_SESSION_DURATION_SECONDS)


def _close_session(
        db: Session,
        record_id: int,
        new_status: RegistrationStatus,
        notes: Optional[str],
        now: Optional[datetime],
) -> Registration:
    record = get_registration(db, record_id)
    if not record.is_active:
        raise InvalidStateTransition(
            f"Registration is already {record.status}.",
            record_id=record.id,
            status=record.status,
        )

    ended_at = now or utcnow()
    values = {
        Registration.status: new_status.value,
        Registration.ended_at: ended_at,
        Registration.duration_seconds: session_duration_seconds(record.started_at, ended_at),
    }
    if notes is not None:
        values[Registration.notes] = notes

    # 조건부 UPDATE: 동시에 두 번 종료 요청이 와도 한 번만 전이된다
    updated = db.query(Registration).filter(
        Registration.id == record_id,
        Registration.status == RegistrationStatus.ACTIVE.value,
    ).update(values, synchronize_session=False)
    if updated == 0:
        db.rollback()
        current = get_registration(db, record_id)
        raise InvalidStateTransition(
            f"Registration is already {current.status}.",
            record_id=current.id,
            status=current.status,
        )
    db.commit()
    db.refresh(record)
    logger.info(f"Registration {record.id} -> {record.status} ({record.duration_seconds}s)")
    return record


def end_session(db: Session, record_id: int, notes: Optional[str] = None, now: Optional[datetime] = None) -> Registration:
    return _close_session(db, record_id, RegistrationStatus.COMPLETED, notes, now)


def interrupt_session(db: Session, record_id: int, notes: Optional[str] = None, now: Optional[datetime] = None) -> Registration:
    return _close_session(db, record_id, RegistrationStatus.INTERRUPTED, notes, now)


def sweep_abandoned_sessions(db: Session, now: Optional[datetime] = None) -> List[Registration]:
    """
    최대 세션 시간을 넘긴 active 레코드를 interrupted 로 전이한다.
    다른 요청이 먼저 종료한 레코드는 건너뛴다.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=settings.MAX_SESSION_DURATION_SECONDS)
    stale_ids = [
        row.id for row in db.query(Registration.id).filter(
            Registration.status == RegistrationStatus.ACTIVE.value,
            Registration.started_at < cutoff,
        ).all()
    ]

    interrupted = []
    for record_id in stale_ids:
        try:
            interrupted.append(interrupt_session(db, record_id, now=now))
        except InvalidStateTransition:
            continue
    if interrupted:
        logger.info(f"Sweep marked {len(interrupted)} abandoned registration(s) as interrupted")
    return interrupted


def update_notes(db: Session, record_id: int, notes: str) -> Registration:
    """ 종료된 레코드에서도 허용되는 유일한 변경 """
    record = get_registration(db, record_id)
    record.notes = notes
    db.commit()
    db.refresh(record)
    return record


def _lab_day_bounds(day) -> Tuple[datetime, datetime]:
    tz = ZoneInfo(settings.LAB_TIMEZONE)
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
    return start, start + timedelta(days=1)


def list_registrations(db: Session, filters: RegistrationFilters) -> Tuple[List[Registration], Pagination]:
    query = db.query(Registration)

    if filters.date:
        day_start, day_end = _lab_day_bounds(filters.date)
        query = query.filter(Registration.started_at >= day_start, Registration.started_at < day_end)
    if filters.start_date:
        query = query.filter(Registration.started_at >= to_naive_utc(filters.start_date))
    if filters.end_date:
        query = query.filter(Registration.started_at <= to_naive_utc(filters.end_date))
    if filters.lab_id:
        query = query.filter(Registration.lab_id == filters.lab_id)
    if filters.roll_no:
        query = query.filter(Registration.roll_no == filters.roll_no.upper())
    if filters.status:
        query = query.filter(Registration.status == filters.status.value)

    total = query.count()
    items = (
        query.order_by(Registration.started_at.desc(), Registration.id.desc())
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
        .all()
    )
    total_pages = math.ceil(total / filters.limit) if total else 0
    pagination = Pagination(
        current_page=filters.page,
        total_pages=total_pages,
        total_records=total,
        has_next_page=filters.page < total_pages,
        has_prev_page=filters.page > 1,
        limit=filters.limit,
    )
    return items, pagination


def get_lab_stats(db: Session) -> List[LabStats]:
    rows = (
        db.query(
            Registration.lab_id,
            func.count(Registration.id).label("total"),
            func.sum(case((Registration.status == RegistrationStatus.ACTIVE.value, 1), else_=0)).label("active"),
            func.count(distinct(Registration.roll_no)).label("unique_students"),
            func.max(Registration.started_at).label("last_used"),
        )
        .group_by(Registration.lab_id)
        .order_by(Registration.lab_id)
        .all()
    )
    return [
        LabStats(
            lab_id=row.lab_id,
            total_registrations=row.total,
            active_registrations=row.active or 0,
            unique_students=row.unique_students,
            last_used=row.last_used,
        )
        for row in rows
    ]


def get_workstation_utilization(db: Session, lab_id: str) -> List[WorkstationUtilization]:
    rows = (
        db.query(
            Registration.workstation_id,
            func.count(Registration.id).label("usage"),
            func.coalesce(func.sum(Registration.duration_seconds), 0).label("duration"),
            func.count(distinct(Registration.roll_no)).label("unique_users"),
            func.max(Registration.started_at).label("last_used"),
        )
        .filter(Registration.lab_id == lab_id)
        .group_by(Registration.workstation_id)
        .order_by(func.count(Registration.id).desc(), Registration.workstation_id)
        .all()
    )
    return [
        WorkstationUtilization(
            workstation_id=row.workstation_id,
            total_usage=row.usage,
            total_duration=int(row.duration),
            average_duration=round(row.duration / row.usage, 2) if row.usage else 0.0,
            unique_users=row.unique_users,
            last_used=row.last_used,
        )
        for row in rows
    ]
