"""
Authentication API endpoints
用户认证API端点
"""

from fastapi import APIRouter, Depends, status

from undercover_client.devserver.auth import auth_service, get_current_user, get_store, user_view
from undercover_client.devserver.store import MemoryStore, UserRecord
from undercover_client.schemas import AuthResponse, LoginCredentials, RegisterData, User

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterData, store: MemoryStore = Depends(get_store)):
    """用户注册"""
    return auth_service.register_user(store, data)


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginCredentials, store: MemoryStore = Depends(get_store)):
    """用户登录"""
    return auth_service.login_user(store, credentials)


@router.get("/profile", response_model=User)
async def profile(current_user: UserRecord = Depends(get_current_user)):
    return user_view(current_user)
