"""
Round and vote schemas
回合与投票数据模型
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from .common import ApiModel, PlayerRole, RoundStatus, WinnerRole


class Vote(ApiModel):
    """One vote; both ids are GamePlayer ids"""
    id: Optional[str] = None
    round_id: Optional[str] = None
    voter_id: str
    voted_for_id: str
    created_at: Optional[datetime] = None


class VoteCreate(ApiModel):
    """投票请求"""
    voter_id: str = Field(..., min_length=1)
    voted_for_id: str = Field(..., min_length=1)


class Round(ApiModel):
    """A describe/vote cycle; ``starter_id`` and ``eliminated_player_id`` are GamePlayer ids"""
    id: str
    game_id: Optional[str] = None
    round_number: int = 1
    starter_id: Optional[str] = None
    status: RoundStatus = RoundStatus.DESCRIBING
    eliminated_player_id: Optional[str] = None
    votes: List[Vote] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class RoundResult(ApiModel):
    """Server tally of a round; tie-break is the server's business"""
    round_id: Optional[str] = None
    round_number: Optional[int] = None
    eliminated_player_id: Optional[str] = None
    eliminated_role: Optional[PlayerRole] = None
    vote_counts: Dict[str, int] = Field(default_factory=dict)
    game_finished: bool = False
    winner: Optional[WinnerRole] = None


class GameHistory(ApiModel):
    """Rounds played so far"""
    game_id: str
    rounds: List[Round] = Field(default_factory=list)
