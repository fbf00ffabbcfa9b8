import os

# 앱 모듈 import 전에 테스트용 환경 변수를 설정해야 한다
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-lab-registry")
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lab_registry.db.base import Base
from lab_registry.dependencies.db import get_db
from lab_registry.main import app
from lab_registry.models.user import Role
import lab_registry.models.registration  # noqa: F401
from lab_registry.schemas.auth import PrincipalCreate
from lab_registry.services.credential_service import create_principal
from lab_registry.services.token_service import issue_session_token

STUDENT_PASSWORD = "secret123"
FACULTY_PASSWORD = "faculty123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_student(db, email="a@x.edu", roll_no="CS21A001", dob=date(2002, 5, 1), name="Asha Rao"):
    return create_principal(db, principal_in=PrincipalCreate(
        name=name,
        email=email,
        password=STUDENT_PASSWORD,
        role=Role.STUDENT,
        roll_no=roll_no,
        date_of_birth=dob,
    ))


def make_faculty(db, email="prof@x.edu", name="Dr. Mehta"):
    return create_principal(db, principal_in=PrincipalCreate(
        name=name,
        email=email,
        password=FACULTY_PASSWORD,
        role=Role.FACULTY,
    ))


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {issue_session_token(user)}"}


@pytest.fixture
def student(db):
    return make_student(db)


@pytest.fixture
def other_student(db):
    return make_student(db, email="b@x.edu", roll_no="CS21A002", dob=date(2003, 1, 15), name="Ravi Kumar")


@pytest.fixture
def faculty(db):
    return make_faculty(db)
