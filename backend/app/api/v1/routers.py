# backend/app/api/v1/routers.py
from fastapi import APIRouter

from app.api.v1 import auth, chat, friends, groups, search, users

# 메인 API 라우터 (/api)
api_router = APIRouter(prefix="/api")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
api_router.include_router(groups.router, prefix="/groups", tags=["groups"])
api_router.include_router(friends.router, prefix="/friends", tags=["friends"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
