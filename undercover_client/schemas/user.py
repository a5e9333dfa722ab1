"""
User and authentication schemas
用户认证数据模型
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import Field, validator

from .common import ApiModel


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


class User(ApiModel):
    """User profile returned by the API"""
    id: str
    email: str
    username: str
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None


class LoginCredentials(ApiModel):
    """登录请求"""
    email: str = Field(..., description="邮箱地址")
    password: str = Field(..., min_length=1, description="密码")

    @validator('email')
    def validate_email(cls, v):
        """验证邮箱格式"""
        v = v.strip()
        if not re.match(EMAIL_PATTERN, v):
            raise ValueError('邮箱格式不正确')
        return v


class RegisterData(LoginCredentials):
    """注册请求"""
    username: str = Field(..., min_length=1, max_length=50, description="用户名")
    avatar: Optional[str] = None

    @validator('username')
    def validate_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('用户名不能为空')
        return v


class AuthResponse(ApiModel):
    """Bearer credential plus the authenticated profile"""
    access_token: str
    user: User
