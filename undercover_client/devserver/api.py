"""
Development server API router
开发服务器路由配置
"""

from fastapi import APIRouter

from undercover_client.devserver.endpoints import auth, games, groups, rooms, words

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(groups.router, prefix="/groups", tags=["groups"])
api_router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
api_router.include_router(games.router, prefix="/games", tags=["games"])
api_router.include_router(words.router, prefix="/words", tags=["words"])
