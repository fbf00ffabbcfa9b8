import enum

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime
from sqlalchemy.sql import func
from lab_registry.db.base import Base


class Role(str, enum.Enum):
    STUDENT = "student"
    FACULTY = "faculty"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # 항상 소문자로 저장하므로 unique 제약이 대소문자 무시 유일성이 된다
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.STUDENT.value)
    roll_no = Column(String(20), unique=True, index=True, nullable=True, comment="학생 전용, 대문자 저장")
    date_of_birth = Column(Date, nullable=True, comment="학생 전용")
    department = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def role_enum(self) -> Role:
        return Role(self.role)
