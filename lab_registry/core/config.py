import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lab_registry.db")

    # 서명 키에는 기본값을 두지 않는다. 없으면 시작 시점에 실패해야 한다.
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = "college-lab-system"
    SESSION_TOKEN_AUDIENCE = "lab-users"
    IDENTITY_TOKEN_AUDIENCE = "password-reset"
    SESSION_TOKEN_EXPIRE_HOURS = int(os.getenv("SESSION_TOKEN_EXPIRE_HOURS", 24))
    IDENTITY_TOKEN_EXPIRE_MINUTES = 10

    REGISTRATION_MAX_AGE_MINUTES = int(os.getenv("REGISTRATION_MAX_AGE_MINUTES", 60))
    REGISTRATION_FUTURE_SKEW_SECONDS = int(os.getenv("REGISTRATION_FUTURE_SKEW_SECONDS", 60))
    MAX_SESSION_DURATION_SECONDS = int(os.getenv("MAX_SESSION_DURATION_SECONDS", 8 * 60 * 60))

    LAB_IDS = _csv(os.getenv("LAB_IDS", "Lab-1,Lab-2,Lab-3,Lab-4,Lab-5"))
    LAB_TIMEZONE = os.getenv("LAB_TIMEZONE", "Asia/Kolkata")

    MIN_STUDENT_AGE = 16
    MAX_STUDENT_AGE = 35

    CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

    BOOTSTRAP_FACULTY_EMAIL = os.getenv("BOOTSTRAP_FACULTY_EMAIL")
    BOOTSTRAP_FACULTY_PASSWORD_HASH = os.getenv("BOOTSTRAP_FACULTY_PASSWORD_HASH")
    BOOTSTRAP_FACULTY_NAME = os.getenv("BOOTSTRAP_FACULTY_NAME", "Lab Administrator")

settings = Settings()
