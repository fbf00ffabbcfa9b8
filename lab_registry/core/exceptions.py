from typing import Any, Optional

from fastapi import status


class LabRegistryError(Exception):
    """도메인 에러 공통 베이스. 경계(main.py 핸들러)에서 JSON 응답으로 변환된다."""

    code = "LAB_REGISTRY_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.code, "message": self.message}
        body.update(self.context)
        return body


# --- 설정 ---

class ConfigurationError(LabRegistryError):
    code = "CONFIGURATION_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server configuration error."


# --- 인증 계층 ---

class AuthenticationError(LabRegistryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}


class MissingToken(AuthenticationError):
    code = "MISSING_TOKEN"
    default_message = "Access token required."


class TokenInvalid(AuthenticationError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token."


class TokenExpired(AuthenticationError):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired."


class PurposeMismatch(AuthenticationError):
    code = "PURPOSE_MISMATCH"
    default_message = "Token cannot be used for this operation."


class PrincipalInactive(AuthenticationError):
    code = "ACCOUNT_DEACTIVATED"
    default_message = "Account is deactivated."


class InvalidCredentials(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password."


class InvalidIdentity(AuthenticationError):
    code = "INVALID_IDENTITY"
    default_message = "Invalid email or date of birth."


class AccessDenied(LabRegistryError):
    code = "ACCESS_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied."


# --- 입력 검증 ---

class ValidationError(LabRegistryError):
    """필드 단위 검증 실패. errors 는 항상 [{field, message}] 목록이다."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Validation failed."

    def __init__(self, errors: list[dict], message: Optional[str] = None):
        super().__init__(message, errors=errors)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])


# --- 조회 ---

class NotFoundError(LabRegistryError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class PrincipalNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found."


class RegistrationNotFound(NotFoundError):
    code = "REGISTRATION_NOT_FOUND"
    default_message = "Registration not found."


# --- 비즈니스 불변식 ---

class ConflictError(LabRegistryError):
    status_code = status.HTTP_409_CONFLICT


class EmailAlreadyRegistered(ConflictError):
    code = "EMAIL_ALREADY_REGISTERED"
    default_message = "This email is already registered."


class RollNoAlreadyRegistered(ConflictError):
    code = "ROLL_NO_ALREADY_REGISTERED"
    default_message = "This roll number is already registered."


class DuplicateRegistration(ConflictError):
    code = "DUPLICATE_REGISTRATION"
    default_message = "You already have an active lab registration."


class WorkstationInUse(ConflictError):
    code = "SYSTEM_IN_USE"
    default_message = "This workstation is already in use."


class InvalidStateTransition(ConflictError):
    code = "INVALID_STATE_TRANSITION"
    default_message = "Registration is not active."


class StaleTimestamp(LabRegistryError):
    code = "STALE_TIMESTAMP"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Timestamp must be within the accepted window."
