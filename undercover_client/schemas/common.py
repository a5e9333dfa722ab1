"""
Common Pydantic schemas
通用数据模型和状态枚举
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model for API payloads: camelCase on the wire, snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for a request"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GameMode(str, Enum):
    """游戏模式"""
    CLASSIC = "classic"
    EXTENDED = "extended"


class GameStatus(str, Enum):
    """
    游戏状态
    The API uses two spellings per state; both are accepted here and
    nowhere else.
    """
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return _GAME_STATUS_ALIASES.get(value.lower())
        return None


_GAME_STATUS_ALIASES = {
    "waiting": GameStatus.WAITING,
    "not_started": GameStatus.WAITING,
    "active": GameStatus.ACTIVE,
    "in_progress": GameStatus.ACTIVE,
    "finished": GameStatus.FINISHED,
    "completed": GameStatus.FINISHED,
}


class PlayerRole(str, Enum):
    """玩家角色"""
    CIVILIAN = "civilian"
    UNDERCOVER = "undercover"
    MR_WHITE = "mr_white"


class PlayerStatus(str, Enum):
    """玩家存活状态"""
    ALIVE = "alive"
    ELIMINATED = "eliminated"


class RoundStatus(str, Enum):
    """回合状态"""
    DESCRIBING = "describing"
    VOTING = "voting"
    COMPLETED = "completed"


class WinnerRole(str, Enum):
    """获胜阵营"""
    CIVILIANS = "civilians"
    UNDERCOVER = "undercover"
    MR_WHITE = "mr_white"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() in ("civilian", "civilians"):
            return cls.CIVILIANS
        return None

    @property
    def label(self) -> str:
        return {
            WinnerRole.CIVILIANS: "Civilians",
            WinnerRole.UNDERCOVER: "Undercover",
            WinnerRole.MR_WHITE: "Mr. White",
        }[self]


def normalize_game_status(value: Any) -> Any:
    """Map an external status spelling to its GameStatus value"""
    if isinstance(value, str):
        status = _GAME_STATUS_ALIASES.get(value.lower())
        if status is not None:
            return status
    return value


class MessageResponse(BaseModel):
    """简单消息响应"""
    message: str = Field(..., description="响应消息")
    success: bool = Field(default=True, description="操作是否成功")
    detail: Optional[Dict[str, Any]] = None
