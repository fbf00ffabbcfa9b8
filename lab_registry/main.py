# /lab_registry/main.py
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# --- Core / Config ---
from lab_registry.core.config import settings
from lab_registry.core.exceptions import LabRegistryError
from lab_registry.db.session import SessionLocal, init_db
from lab_registry.services.credential_service import ensure_bootstrap_faculty
from lab_registry.services.token_service import ensure_signing_secret

# --- API Routers ---
from lab_registry.api.routes import auth as auth_router
from lab_registry.api.routes import registrations as registrations_router


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    force=True
)

logger = logging.getLogger(__name__)


# --- Lifespan (애플리케이션 시작/종료 이벤트) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 서명 키가 없으면 여기서 ConfigurationError 로 기동 실패
    ensure_signing_secret()
    init_db()

    db = SessionLocal()
    try:
        ensure_bootstrap_faculty(db)
    finally:
        db.close()

    logger.info("Lab registry API started")
    yield


# --- FastAPI App Instance ---
app = FastAPI(
    title="College Lab Registration API",
    version="1.0.0",
    lifespan=lifespan
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        f"Request processed: {request.method} {request.url.path} - {response.status_code} - Completed in {process_time:.4f} secs"
    )

    return response


# --- 에러 핸들러 ---
@app.exception_handler(LabRegistryError)
async def lab_registry_error_handler(request: Request, exc: LabRegistryError):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    # 필드별 [{field, message}] 목록으로 통일
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or "body", "message": error.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "VALIDATION_ERROR", "message": "Validation failed.", "errors": errors},
    )


# --- CORS 미들웨어 설정 ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# --- 라우트 등록 ---
app.include_router(
    auth_router.router,
    prefix="/api/v1/auth",
    tags=["Authentication"]
)

app.include_router(
    registrations_router.router,
    prefix="/api/v1/registrations",
    tags=["registrations"]
)


@app.get("/api/health", tags=["health"])
def health():
    return {"status": "OK", "version": app.version}
