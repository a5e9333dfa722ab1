"""
Room schemas
房间数据模型
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, validator

from .common import ApiModel, GameMode
from .group import Group


class Room(ApiModel):
    """A persistent context created from a group; games are created inside it"""
    id: str
    name: str
    group_id: Optional[str] = None
    game_mode: GameMode = GameMode.CLASSIC
    created_at: Optional[datetime] = None
    group: Optional[Group] = None


class RoomCreate(ApiModel):
    """创建房间请求"""
    name: str = Field(..., min_length=1, max_length=100, description="房间名称")
    group_id: Optional[str] = None
    game_mode: GameMode = GameMode.CLASSIC

    @validator('name')
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('房间名称不能为空')
        return v
