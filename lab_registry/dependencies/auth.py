from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from lab_registry.core.exceptions import AccessDenied, MissingToken
from lab_registry.dependencies.db import get_db
from lab_registry.models.user import Role
from lab_registry.services.session_validator import AuthenticatedSession, authorize, resolve_principal

# auto_error=False: 헤더가 없을 때 FastAPI 기본 403 대신 MissingToken 을 던진다
bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise MissingToken()
    return credentials.credentials


def get_current_session(
        token: str = Depends(get_bearer_token),
        db: Session = Depends(get_db),
) -> AuthenticatedSession:
    return resolve_principal(db, token)


def require_role(role: Role):
    def dependency(session: AuthenticatedSession = Depends(get_current_session)) -> AuthenticatedSession:
        decision = authorize(session.claims, role)
        if not decision.allowed:
            raise AccessDenied(
                f"Access denied. {role.value.capitalize()} role required.",
                redirect_to=decision.redirect_to,
            )
        return session

    return dependency


# 역할 전용 dependency alias
get_current_student = require_role(Role.STUDENT)
get_current_faculty = require_role(Role.FACULTY)
