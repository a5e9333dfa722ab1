"""
Group and player schemas
玩家分组数据模型
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, validator

from .common import ApiModel


class Player(ApiModel):
    """A named player belonging to one group"""
    id: str
    name: str
    avatar: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_input(self) -> "PlayerInput":
        return PlayerInput(id=self.id, name=self.name, avatar=self.avatar, user_id=self.user_id)


class PlayerInput(ApiModel):
    """Player entry of a group create/replace request; no id means a new player"""
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=50, description="玩家名称")
    avatar: Optional[str] = None
    user_id: Optional[str] = None

    @validator('name')
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('玩家名称不能为空')
        return v


class Group(ApiModel):
    """Group with its ordered player list"""
    id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    players: List[Player] = Field(default_factory=list)

    def find_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)


class GroupCreate(ApiModel):
    """创建分组请求"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    players: List[PlayerInput] = Field(default_factory=list)

    @validator('name')
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('分组名称不能为空')
        return v


class GroupUpdate(ApiModel):
    """
    Partial group update. The API replaces the whole group, so missing
    fields are filled from the current group before sending.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    players: Optional[List[PlayerInput]] = None

    @property
    def is_complete(self) -> bool:
        return self.name is not None and self.players is not None
