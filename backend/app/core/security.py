from passlib.context import CryptContext
from datetime import datetime, timedelta
from jose import jwt, JWTError
from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from app.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from app.core.errors import Unauthorized

# 비밀번호 암호화 설정
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 토큰을 얻어올 엔드포인트 URL 설정 (Swagger UI 인증에 사용)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# --- 인증 관련 함수 ---

def get_password_hash(password: str) -> str:
    """비밀번호를 해시화합니다."""
    return pwd_context.hash(password[:72])

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """평문 비밀번호와 해시된 비밀번호를 비교합니다."""
    return pwd_context.verify(plain_password[:72], hashed_password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """JWT 액세스 토큰을 생성합니다."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def create_user_token(user_id: int) -> str:
    return create_access_token({"sub": str(user_id)})

# --- HTTP API 검증 함수 ---

def verify_token(token: str) -> int:
    """
    JWT 토큰을 디코딩하고 유효성을 검증한 뒤 user_id를 반환합니다.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise Unauthorized()
        return int(user_id)
    except (JWTError, ValueError):
        raise Unauthorized()

async def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme)) -> int:
    """
    FastAPI Dependency: 헤더에서 토큰을 추출하고 검증하여 user_id를 반환합니다.
    """
    if not token:
        raise Unauthorized("Access denied. No token provided.")
    return verify_token(token)

# --- 웹소켓 검증 함수 ---

def authenticate_websocket_token(token: Optional[str]) -> Optional[int]:
    """
    WebSocket 핸드셰이크 토큰을 검증합니다. 실패 시 None을 반환하며
    호출 측은 accept 이전에 연결을 종료해야 합니다.
    """
    if not token:
        return None
    if token.startswith("Bearer "):
        token = token.split(" ", 1)[1]
    try:
        return verify_token(token)
    except Unauthorized:
        return None
