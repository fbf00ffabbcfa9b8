from typing import Generator

from sqlalchemy.orm import Session

from lab_registry.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
