import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lab_registry.db.base import Base


class RegistrationStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


TERMINAL_STATUSES = (RegistrationStatus.COMPLETED.value, RegistrationStatus.INTERRUPTED.value)

_ACTIVE_ONLY = text("status = 'active'")


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        # active 상태에 한정된 부분 유니크 인덱스. 동시 제출 경합은 DB 가 판정한다.
        Index(
            "uq_registrations_active_student",
            "student_id",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_registrations_active_workstation",
            "lab_id",
            "workstation_id",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index("ix_registrations_lab_started", "lab_id", "started_at"),
        Index("ix_registrations_roll_started", "roll_no", "started_at"),
        Index("ix_registrations_started_status", "started_at", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    student_name = Column(String(100), nullable=False)
    roll_no = Column(String(20), nullable=False)
    lab_id = Column(String(20), nullable=False)
    workstation_id = Column(String(20), nullable=False)
    started_at = Column(DateTime, nullable=False)
    machine_fingerprint = Column(String(128), nullable=False, index=True)
    client_system_info = Column(JSON, nullable=False)
    ip_address = Column(String(45), nullable=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.ACTIVE.value, index=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    student = relationship("User", backref="registrations")

    @property
    def is_active(self) -> bool:
        return self.status == RegistrationStatus.ACTIVE.value
