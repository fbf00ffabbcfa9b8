import re
from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from lab_registry.models.user import Role

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[A-Za-z\d@$!%*#?&]{6,}$")
ROLL_NO_PATTERN = re.compile(r"^[A-Z]{2}\d{2}[A-Z]{1,2}\d{3,4}$")


def check_password_policy(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError("Password must be at least 6 characters and contain at least one letter and one number")
    return value


def normalize_roll_no(value: str) -> str:
    value = value.strip().upper()
    if not ROLL_NO_PATTERN.match(value):
        raise ValueError("Roll number format should be like CS21A001")
    return value


Password = Annotated[str, AfterValidator(check_password_policy)]
RollNo = Annotated[str, AfterValidator(normalize_roll_no)]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class PrincipalResponse(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    roll_no: Optional[str] = None
    department: Optional[str] = None
    date_of_birth: Optional[date] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    expires_in: int
    user: PrincipalResponse
    message: str = "Login successful"


class PrincipalCreate(BaseModel):
    """ 학생 자가 가입과 교수자 발급이 공유하는 입력 """
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: Password
    role: Role = Role.STUDENT
    roll_no: Optional[RollNo] = None
    date_of_birth: Optional[date] = None
    department: Optional[str] = Field(None, max_length=100)


class StudentRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: Password
    roll_no: RollNo
    date_of_birth: date
    department: Optional[str] = Field(None, max_length=100)


class VerifyDobRequest(BaseModel):
    email: EmailStr
    dob: date


class VerifyDobResponse(BaseModel):
    success: bool = True
    reset_token: str
    expires_in: int
    message: str = "Date of birth verified successfully"


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(..., min_length=1)
    new_password: Password


class FacultyResetPasswordRequest(BaseModel):
    email: EmailStr
    new_password: Password


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: Password


class ProfileUpdateRequest(BaseModel):
    """ 생년월일은 비밀번호 재설정의 본인 확인 수단이므로 여기서 바꿀 수 없다 """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[str] = Field(None, max_length=100)


class PrincipalStatusRequest(BaseModel):
    is_active: bool


class StudentInfo(BaseModel):
    name: str
    email: str
    roll_no: Optional[str] = None


class FacultyResetPasswordResponse(BaseModel):
    success: bool = True
    message: str
    student_info: StudentInfo


class ProfileResponse(BaseModel):
    success: bool = True
    user: PrincipalResponse
    message: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str
