import enum
import logging
import jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from lab_registry.core.config import settings
from lab_registry.core.exceptions import (
    ConfigurationError,
    PrincipalInactive,
    PurposeMismatch,
    TokenExpired,
    TokenInvalid,
)
from lab_registry.models.user import Role, User

logger = logging.getLogger(__name__)


class TokenPurpose(str, enum.Enum):
    SESSION = "session"
    IDENTITY_VERIFICATION = "dob_verification"


@dataclass(frozen=True)
class TokenClaims:
    principal_id: int
    email: str
    purpose: TokenPurpose
    issued_at: datetime
    expires_at: datetime
    role: Optional[Role] = None


def _audience_for(purpose: TokenPurpose) -> str:
    if purpose == TokenPurpose.SESSION:
        return settings.SESSION_TOKEN_AUDIENCE
    return settings.IDENTITY_TOKEN_AUDIENCE


def ensure_signing_secret() -> str:
    """ 서명 키 확인. 앱 시작 시 호출되며 없으면 기동을 중단한다. """
    secret = settings.JWT_SECRET_KEY
    if not secret:
        raise ConfigurationError("JWT_SECRET_KEY is not configured.")
    return secret


def _encode(claims: dict, purpose: TokenPurpose, lifetime: timedelta, now: Optional[datetime] = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update({
        "type": purpose.value,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "iss": settings.JWT_ISSUER,
        "aud": _audience_for(purpose),
    })
    return jwt.encode(to_encode, ensure_signing_secret(), algorithm=settings.JWT_ALGORITHM)


def issue_session_token(user: User, now: Optional[datetime] = None) -> str:
    if not user.is_active:
        raise PrincipalInactive()
    payload = {"sub": str(user.id), "email": user.email, "role": user.role}
    return _encode(payload, TokenPurpose.SESSION, timedelta(hours=settings.SESSION_TOKEN_EXPIRE_HOURS), now)


def issue_identity_verification_token(user: User, now: Optional[datetime] = None) -> str:
    """
    생년월일 확인이 끝난 뒤에만 호출한다.
    비밀번호 없이 재설정 권한을 주므로 수명은 10분으로 고정.
    """
    payload = {"sub": str(user.id), "email": user.email}
    return _encode(
        payload,
        TokenPurpose.IDENTITY_VERIFICATION,
        timedelta(minutes=settings.IDENTITY_TOKEN_EXPIRE_MINUTES),
        now,
    )


def validate_token(token: str, expected_purpose: TokenPurpose = TokenPurpose.SESSION) -> TokenClaims:
    secret = ensure_signing_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            options={
                "require": ["exp", "iat", "sub", "type"],
                "verify_aud": False,
            },
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError as e:
        logger.info(f"Token rejected: {type(e).__name__}")
        raise TokenInvalid()

    try:
        purpose = TokenPurpose(payload["type"])
    except ValueError:
        raise TokenInvalid()

    if purpose != expected_purpose:
        raise PurposeMismatch(expected=expected_purpose.value, presented=purpose.value)

    # type 클레임과 audience 가 반드시 짝이 맞아야 한다
    if payload.get("aud") != _audience_for(purpose):
        raise TokenInvalid()

    try:
        principal_id = int(payload["sub"])
        role = Role(payload["role"]) if purpose == TokenPurpose.SESSION else None
    except (KeyError, ValueError):
        raise TokenInvalid()

    email = payload.get("email")
    if not email:
        raise TokenInvalid()

    return TokenClaims(
        principal_id=principal_id,
        email=email,
        purpose=purpose,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        role=role,
    )
