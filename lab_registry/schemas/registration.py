import re
from datetime import date as date_type, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field

from lab_registry.core.config import settings
from lab_registry.models.registration import RegistrationStatus
from lab_registry.schemas.auth import RollNo
from lab_registry.utils.formatting import format_duration, format_lab_time

WORKSTATION_PATTERN = re.compile(r"^[A-Z]{2,4}-\d{1,3}$")


def check_lab_id(value: str) -> str:
    value = value.strip()
    if value not in settings.LAB_IDS:
        raise ValueError("Invalid lab number")
    return value


def normalize_workstation_id(value: str) -> str:
    value = value.strip().upper()
    if not WORKSTATION_PATTERN.match(value):
        raise ValueError("System number should be in format like PC-01 or SYS-15")
    return value


LabId = Annotated[str, AfterValidator(check_lab_id)]
WorkstationId = Annotated[str, AfterValidator(normalize_workstation_id)]


class ClientSystemInfo(BaseModel):
    platform: Literal["win32", "darwin", "linux", "web"]
    hostname: str = Field(..., min_length=1, max_length=255)
    arch: Optional[Literal["x64", "x32", "arm64", "arm"]] = None
    version: Optional[str] = Field(None, max_length=100)
    memory: Optional[str] = Field(None, max_length=50)
    cpu_model: Optional[str] = Field(None, max_length=200)


class RegistrationCreateRequest(BaseModel):
    roll_no: RollNo
    lab_id: LabId
    workstation_id: WorkstationId
    machine_fingerprint: str = Field(..., min_length=10, max_length=128)
    client_system_info: ClientSystemInfo
    # 생략하면 서버 시각을 사용
    started_at: Optional[datetime] = None


class RegistrationResponse(BaseModel):
    id: int
    student_id: int
    student_name: str
    roll_no: str
    lab_id: str
    workstation_id: str
    started_at: datetime
    machine_fingerprint: str
    client_system_info: dict
    ip_address: Optional[str] = None
    status: RegistrationStatus
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    notes: Optional[str] = None
    formatted_started_at: Optional[str] = None
    formatted_duration: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_record(cls, record) -> "RegistrationResponse":
        response = cls.model_validate(record)
        response.formatted_started_at = format_lab_time(record.started_at)
        response.formatted_duration = format_duration(record.duration_seconds)
        return response


class RegistrationCreateResponse(BaseModel):
    success: bool = True
    message: str = "Lab registration completed successfully!"
    registration: RegistrationResponse


class RegistrationFilters(BaseModel):
    date: Optional[date_type] = None
    lab_id: Optional[str] = None
    roll_no: Optional[str] = None
    status: Optional[RegistrationStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool
    limit: int


class RegistrationListResponse(BaseModel):
    success: bool = True
    registrations: List[RegistrationResponse]
    pagination: Pagination


class EndSessionRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class NotesUpdateRequest(BaseModel):
    notes: str = Field(..., max_length=500)


class SweepResponse(BaseModel):
    success: bool = True
    interrupted: List[RegistrationResponse]


class LabStats(BaseModel):
    lab_id: str
    total_registrations: int
    active_registrations: int
    unique_students: int
    last_used: Optional[datetime] = None


class LabStatsResponse(BaseModel):
    labs: List[LabStats]


class WorkstationUtilization(BaseModel):
    workstation_id: str
    total_usage: int
    total_duration: int
    average_duration: float
    unique_users: int
    last_used: Optional[datetime] = None


class WorkstationUtilizationResponse(BaseModel):
    lab_id: str
    workstations: List[WorkstationUtilization]
