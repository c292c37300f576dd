# backend/app/api/v1/auth.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.services import user_service
from app.core.security import get_current_user_id
from app.schemas.user import AuthResponse, UserCreate, UserLogin, UserMe

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    """회원가입 후 바로 토큰 발급"""
    return await user_service.register_user(db, user_in)


@router.post("/login", response_model=AuthResponse)
async def login(user_in: UserLogin, db: AsyncSession = Depends(get_db)):
    return await user_service.authenticate_user(db, user_in)


@router.get("/me", response_model=UserMe)
async def me(current_user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, current_user_id)


@router.post("/logout")
async def logout(current_user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    await user_service.set_offline(db, current_user_id)
    return {"message": "Logged out successfully"}


@router.post("/refresh", response_model=AuthResponse)
async def refresh(current_user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await user_service.refresh_token(db, current_user_id)
