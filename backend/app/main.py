import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import ALLOWED_ORIGINS, REDIS_ENABLED
from app.core.logging_config import configure_logging
from app.api.v1.routers import api_router
from app.sockets.chat_socket import router as chat_socket_router
from app.db.database import AsyncSessionLocal, init_db
from app.db.database_redis import RedisManager
from app.realtime.hub import RealtimeHub
from app.repositories.presence_repository import PresenceCache

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Chat API")

# CORS: 프론트엔드가 다른 도메인에서 API를 호출할 수 있도록 허용
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 실시간 상태 (소켓 연결, presence, typing) 는 앱이 소유
app.state.realtime = RealtimeHub.create(
    AsyncSessionLocal,
    cache=PresenceCache() if REDIS_ENABLED else None,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid JSON format", "message": "Request body is not valid JSON"},
        )
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "detail": jsonable_encoder(errors)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc), "path": request.url.path},
    )


@app.on_event("startup")
async def on_startup():
    """
    서버 시작 시 DB 테이블 생성
    """
    await init_db()
    logger.info("Chat API started")


# 라우터 등록 (REST + WebSocket)
app.include_router(api_router)
app.include_router(chat_socket_router)


@app.get("/")
async def root():
    return {"message": "Welcome to Chat API"}


@app.get("/health")
async def health():
    redis_ok = await RedisManager.ping() if REDIS_ENABLED else None
    return {
        "status": "ok",
        "redis": redis_ok,
        "connections": len(app.state.realtime.connections.connections),
    }


@app.on_event("shutdown")
async def on_shutdown():
    """
    서버 종료 시 타이머 정리, 접속 중 유저 오프라인 처리, Redis 풀 해제
    """
    await app.state.realtime.shutdown()
    if REDIS_ENABLED:
        await RedisManager.close()
