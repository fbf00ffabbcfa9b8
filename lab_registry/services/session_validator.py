from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from lab_registry.core.exceptions import PrincipalInactive, TokenInvalid
from lab_registry.models.user import Role, User
from lab_registry.services.credential_service import get_user_by_id
from lab_registry.services.token_service import TokenClaims, TokenPurpose, validate_token

# 역할별 기본 화면. 권한 거부 시 리다이렉트 힌트로만 쓰인다.
DEFAULT_AREAS = {
    Role.STUDENT: "/register-lab",
    Role.FACULTY: "/faculty-dashboard",
}


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    redirect_to: Optional[str] = None


@dataclass(frozen=True)
class AuthenticatedSession:
    """ 요청마다 해석되어 서비스로 명시적으로 전달되는 세션 """
    principal: User
    claims: TokenClaims


def resolve_principal(db: Session, token: str) -> AuthenticatedSession:
    claims = validate_token(token, TokenPurpose.SESSION)
    user = get_user_by_id(db, claims.principal_id)
    if not user:
        raise TokenInvalid()
    # 발급 시점이 아니라 검증 시점의 활성 여부를 본다
    if not user.is_active:
        raise PrincipalInactive()
    return AuthenticatedSession(principal=user, claims=claims)


def authorize(claims: TokenClaims, required_role: Role) -> AuthorizationDecision:
    if claims.role == required_role:
        return AuthorizationDecision(allowed=True)
    return AuthorizationDecision(allowed=False, redirect_to=DEFAULT_AREAS.get(claims.role, "/login"))
