"""
Authentication for the development server
用户认证服务 - bcrypt 密码哈希 + JWT 令牌
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from undercover_client.core.config import settings
from undercover_client.devserver.store import MemoryStore, UserRecord, new_id
from undercover_client.schemas import AuthResponse, LoginCredentials, RegisterData, User

logger = logging.getLogger(__name__)

# auto_error=False 使得 HTTPBearer 在没有 token 时不会自动返回 403
security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> MemoryStore:
    return request.app.state.store


def user_view(user: UserRecord) -> User:
    return User(id=user.id, email=user.email, username=user.username, avatar=user.avatar, created_at=user.created_at)


class AuthService:
    """Registration, login and bearer token checks"""

    def hash_password(self, password: str) -> str:
        # bcrypt has a 72-byte limit
        password_bytes = password.encode('utf-8')[:72]
        return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        try:
            password_bytes = plain_password.encode('utf-8')[:72]
            return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
        except ValueError:
            return False

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def verify_token(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            return None

    def _issue(self, user: UserRecord) -> AuthResponse:
        token = self.create_access_token({"sub": user.id})
        return AuthResponse(access_token=token, user=user_view(user))

    def register_user(self, store: MemoryStore, data: RegisterData) -> AuthResponse:
        if store.user_by_email(data.email) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered")
        user = UserRecord(
            id=new_id(),
            email=data.email,
            username=data.username,
            password_hash=self.hash_password(data.password),
            avatar=data.avatar,
        )
        store.users[user.id] = user
        logger.info(f"User registered: {user.username}")
        return self._issue(user)

    def login_user(self, store: MemoryStore, credentials: LoginCredentials) -> AuthResponse:
        user = store.user_by_email(credentials.email)
        if user is None or not self.verify_password(credentials.password, user.password_hash):
            logger.warning(f"Failed login for {credentials.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return self._issue(user)

    def user_for_token(self, store: MemoryStore, token: str) -> Optional[UserRecord]:
        payload = self.verify_token(token)
        if not payload:
            return None
        return store.users.get(payload.get("sub"))


auth_service = AuthService()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: MemoryStore = Depends(get_store),
) -> UserRecord:
    """Dependency: the authenticated user, 401 otherwise"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = auth_service.user_for_token(store, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired credential",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
