import pytest
from conftest import FACULTY_PASSWORD, STUDENT_PASSWORD, bearer
from passlib.hash import bcrypt

from lab_registry.core.config import settings
from lab_registry.core.exceptions import ConfigurationError, InvalidCredentials
from lab_registry.services import auth_service
from lab_registry.services.credential_service import (
    ensure_bootstrap_faculty,
    get_user_by_email,
    hash_password,
    verify_password,
)
from lab_registry.services.token_service import issue_identity_verification_token


def test_login_returns_session_token_and_principal(client, student):
    """
    로그인 성공 시 세션 토큰과 사용자 정보를 반환
    """
    resp = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": STUDENT_PASSWORD})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["token"]
    assert data["expires_in"] == 24 * 3600
    assert data["user"]["id"] == student.id
    assert data["user"]["role"] == "student"
    assert data["user"]["last_login"] is not None
    assert "password_hash" not in data["user"]

    verify = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {data['token']}"})
    assert verify.status_code == 200
    assert verify.json()["user"]["email"] == "a@x.edu"


def test_login_email_is_case_insensitive(client, student):
    resp = client.post("/api/v1/auth/login", json={"email": "A@X.EDU", "password": STUDENT_PASSWORD})
    assert resp.status_code == 200


def test_login_failures_share_one_generic_message(client, student):
    wrong_password = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": "wrong999"})
    unknown_email = client.post("/api/v1/auth/login", json={"email": "nobody@x.edu", "password": STUDENT_PASSWORD})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.json()["message"] == "Invalid email or password."


def test_deactivated_principal_cannot_log_in(client, db, student, faculty):
    resp = client.patch(
        f"/api/v1/auth/users/{student.id}/status", headers=bearer(faculty), json={"is_active": False}
    )
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    resp = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": STUDENT_PASSWORD})
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_CREDENTIALS"


def test_deactivated_principal_token_is_rejected(client, db, student, faculty):
    headers = bearer(student)
    client.patch(f"/api/v1/auth/users/{student.id}/status", headers=bearer(faculty), json={"is_active": False})
    resp = client.get("/api/v1/auth/profile", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"] == "ACCOUNT_DEACTIVATED"


def test_missing_token_is_rejected_before_business_logic(client):
    resp = client.get("/api/v1/auth/profile")
    assert resp.status_code == 401
    assert resp.json()["error"] == "MISSING_TOKEN"


def test_malformed_token_is_rejected(client):
    resp = client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_TOKEN"


def test_verify_dob_scenario(client, student):
    """
    a@x.edu / 2002-05-01 은 성공, 하루 차이는 일반 에러
    """
    ok = client.post("/api/v1/auth/verify-dob", json={"email": "a@x.edu", "dob": "2002-05-01"})
    assert ok.status_code == 200
    assert ok.json()["reset_token"]
    assert ok.json()["expires_in"] == 600

    bad = client.post("/api/v1/auth/verify-dob", json={"email": "a@x.edu", "dob": "2002-05-02"})
    assert bad.status_code == 401
    assert bad.json()["error"] == "INVALID_IDENTITY"
    assert bad.json()["message"] == "Invalid email or date of birth."


def test_verify_dob_does_not_reveal_unknown_email(client, student):
    unknown = client.post("/api/v1/auth/verify-dob", json={"email": "nobody@x.edu", "dob": "2002-05-01"})
    mismatch = client.post("/api/v1/auth/verify-dob", json={"email": "a@x.edu", "dob": "1999-01-01"})
    assert unknown.json() == mismatch.json()


def test_verify_dob_rejects_faculty(client, faculty):
    resp = client.post("/api/v1/auth/verify-dob", json={"email": "prof@x.edu", "dob": "1980-01-01"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_IDENTITY"


def test_reset_password_round_trip(client, student):
    """
    생년월일 확인 -> 재설정 -> 새 비밀번호 로그인 성공, 이전 비밀번호 실패
    """
    reset_token = client.post(
        "/api/v1/auth/verify-dob", json={"email": "a@x.edu", "dob": "2002-05-01"}
    ).json()["reset_token"]

    resp = client.post("/api/v1/auth/reset-password", json={"reset_token": reset_token, "new_password": "newpass42"})
    assert resp.status_code == 200

    new_login = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": "newpass42"})
    old_login = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": STUDENT_PASSWORD})
    assert new_login.status_code == 200
    assert old_login.status_code == 401


def test_reset_password_rejects_session_token(client, student):
    resp = client.post(
        "/api/v1/auth/reset-password",
        json={"reset_token": bearer(student)["Authorization"].split()[1], "new_password": "newpass42"},
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "PURPOSE_MISMATCH"


def test_verification_token_cannot_be_used_as_bearer(client, student):
    token = issue_identity_verification_token(student)
    resp = client.get("/api/v1/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "PURPOSE_MISMATCH"


def test_reset_password_enforces_policy(client, student):
    token = issue_identity_verification_token(student)
    resp = client.post("/api/v1/auth/reset-password", json={"reset_token": token, "new_password": "abcdef"})
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["field"] == "new_password"


def test_faculty_reset_password(client, student, faculty):
    resp = client.post(
        "/api/v1/auth/faculty-reset-password",
        headers=bearer(faculty),
        json={"email": "a@x.edu", "new_password": "byfaculty1"},
    )
    assert resp.status_code == 200
    assert resp.json()["student_info"]["roll_no"] == "CS21A001"

    resp = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": "byfaculty1"})
    assert resp.status_code == 200


def test_faculty_reset_password_requires_faculty(client, student, other_student):
    resp = client.post(
        "/api/v1/auth/faculty-reset-password",
        headers=bearer(student),
        json={"email": "b@x.edu", "new_password": "hijack123"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "ACCESS_DENIED"
    assert resp.json()["redirect_to"] == "/register-lab"


def test_faculty_reset_password_unknown_student(client, faculty):
    resp = client.post(
        "/api/v1/auth/faculty-reset-password",
        headers=bearer(faculty),
        json={"email": "nobody@x.edu", "new_password": "byfaculty1"},
    )
    assert resp.status_code == 404


def test_change_password(client, faculty):
    headers = bearer(faculty)
    wrong = client.post(
        "/api/v1/auth/change-password", headers=headers,
        json={"current_password": "nope1234", "new_password": "changed99"},
    )
    assert wrong.status_code == 401

    ok = client.post(
        "/api/v1/auth/change-password", headers=headers,
        json={"current_password": FACULTY_PASSWORD, "new_password": "changed99"},
    )
    assert ok.status_code == 200
    assert client.post("/api/v1/auth/login", json={"email": "prof@x.edu", "password": "changed99"}).status_code == 200


def test_register_student(client):
    resp = client.post("/api/v1/auth/register", json={
        "name": "Neha Singh",
        "email": "Neha@X.edu",
        "password": "neha2024",
        "roll_no": "ec22b1234",
        "date_of_birth": "2004-08-09",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["email"] == "neha@x.edu"
    assert data["roll_no"] == "EC22B1234"
    assert data["role"] == "student"


def test_register_duplicate_email_case_insensitive(client, student):
    resp = client.post("/api/v1/auth/register", json={
        "name": "Copy", "email": "A@x.edu", "password": "copy1234",
        "roll_no": "CS21A099", "date_of_birth": "2002-05-01",
    })
    assert resp.status_code == 409
    assert resp.json()["error"] == "EMAIL_ALREADY_REGISTERED"


def test_register_duplicate_roll_no(client, student):
    resp = client.post("/api/v1/auth/register", json={
        "name": "Copy", "email": "copy@x.edu", "password": "copy1234",
        "roll_no": "CS21A001", "date_of_birth": "2002-05-01",
    })
    assert resp.status_code == 409
    assert resp.json()["error"] == "ROLL_NO_ALREADY_REGISTERED"


def test_register_returns_field_level_errors(client):
    resp = client.post("/api/v1/auth/register", json={
        "name": "Bad", "email": "bad@x.edu", "password": "short",
        "roll_no": "123", "date_of_birth": "2004-08-09",
    })
    assert resp.status_code == 422
    fields = {error["field"] for error in resp.json()["errors"]}
    assert {"password", "roll_no"} <= fields


def test_register_rejects_out_of_range_age(client):
    resp = client.post("/api/v1/auth/register", json={
        "name": "Too Young", "email": "kid@x.edu", "password": "young123",
        "roll_no": "CS21A050", "date_of_birth": "2020-01-01",
    })
    assert resp.status_code == 422
    assert resp.json()["errors"] == [{"field": "date_of_birth", "message": "Age must be between 16 and 35"}]


def test_provision_faculty_rejects_student_fields(client, faculty):
    resp = client.post("/api/v1/auth/users", headers=bearer(faculty), json={
        "name": "Dr. New", "email": "new@x.edu", "password": "faculty99",
        "role": "faculty", "roll_no": "CS21A077",
    })
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["field"] == "roll_no"


def test_provision_faculty(client, faculty):
    resp = client.post("/api/v1/auth/users", headers=bearer(faculty), json={
        "name": "Dr. New", "email": "new@x.edu", "password": "faculty99", "role": "faculty",
    })
    assert resp.status_code == 201
    assert resp.json()["role"] == "faculty"
    assert resp.json()["roll_no"] is None


def test_student_cannot_provision(client, student):
    resp = client.post("/api/v1/auth/users", headers=bearer(student), json={
        "name": "Dr. Fake", "email": "fake@x.edu", "password": "faculty99", "role": "faculty",
    })
    assert resp.status_code == 403


def test_update_profile(client, student):
    resp = client.put("/api/v1/auth/profile", headers=bearer(student), json={"department": "CSE"})
    assert resp.status_code == 200
    assert resp.json()["user"]["department"] == "CSE"



def test_profile_update_cannot_change_date_of_birth(client, student):
    """
    세션 토큰만으로 생년월일을 바꿔 재설정 흐름을 탈취할 수 없다
    """
    resp = client.put("/api/v1/auth/profile", headers=bearer(student), json={"date_of_birth": "2001-01-01"})
    assert resp.status_code == 200
    assert resp.json()["user"]["date_of_birth"] == "2002-05-01"

    hijack = client.post("/api/v1/auth/verify-dob", json={"email": "a@x.edu", "dob": "2001-01-01"})
    assert hijack.status_code == 401
    assert hijack.json()["error"] == "INVALID_IDENTITY"

    login = client.post("/api/v1/auth/login", json={"email": "a@x.edu", "password": STUDENT_PASSWORD})
    assert login.status_code == 200


def test_bootstrap_faculty_account(db, monkeypatch):
    """
    .env 의 초기 교수자 계정은 한 번만 생성된다
    """
    monkeypatch.setattr(settings, "BOOTSTRAP_FACULTY_EMAIL", "Head@x.edu")
    monkeypatch.setattr(settings, "BOOTSTRAP_FACULTY_PASSWORD_HASH", hash_password("boot1234"))

    user = ensure_bootstrap_faculty(db)
    assert user.email == "head@x.edu"
    assert user.role == "faculty"
    assert verify_password("boot1234", user.password_hash)
    assert ensure_bootstrap_faculty(db).id == user.id


def test_bootstrap_faculty_skipped_without_env(db, monkeypatch):
    monkeypatch.setattr(settings, "BOOTSTRAP_FACULTY_EMAIL", None)
    assert ensure_bootstrap_faculty(db) is None


def test_health(client):
    assert client.get("/api/health").json()["status"] == "OK"


def test_bootstrap_faculty_rejects_plaintext_password(db, monkeypatch):
    monkeypatch.setattr(settings, "BOOTSTRAP_FACULTY_EMAIL", "head@x.edu")
    monkeypatch.setattr(settings, "BOOTSTRAP_FACULTY_PASSWORD_HASH", "plaintext-secret")
    with pytest.raises(ConfigurationError):
        ensure_bootstrap_faculty(db)
    assert get_user_by_email(db, "head@x.edu") is None


def test_unknown_email_still_verifies_a_bcrypt_hash(db, monkeypatch):
    """
    없는 이메일도 비밀번호 해시 검증을 거친 뒤 거부된다
    """
    checked = []

    def recording_verify(password, password_hash):
        checked.append(password_hash)
        return False

    monkeypatch.setattr(auth_service, "verify_password", recording_verify)
    with pytest.raises(InvalidCredentials):
        auth_service.login(db, "nobody@x.edu", "whatever1")
    assert len(checked) == 1
    assert bcrypt.identify(checked[0])
