from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lab_registry.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # FastAPI 는 sync 엔드포인트를 스레드풀에서 실행한다
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """ 모델을 등록하고 테이블 생성 """
    from lab_registry.db.base import Base
    import lab_registry.models.user  # noqa: F401
    import lab_registry.models.registration  # noqa: F401

    Base.metadata.create_all(bind=engine)
