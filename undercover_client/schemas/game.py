"""
Game Pydantic schemas
游戏数据模型
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field, validator

from .common import (
    ApiModel, GameMode, GameStatus, PlayerRole, PlayerStatus,
    WinnerRole, normalize_game_status
)


def next_alive_in_turn(ordered: Sequence[Any], game_player_id: Optional[str]) -> Optional[Any]:
    """
    Next alive entry of ``ordered`` after the one with ``game_player_id``,
    wrapping around. The given player does not need to be alive any more.
    Works on anything with ``id`` and ``is_alive``.
    """
    if not ordered:
        return None
    start = next((i for i, gp in enumerate(ordered) if gp.id == game_player_id), -1)
    for offset in range(1, len(ordered) + 1):
        candidate = ordered[(start + offset) % len(ordered)]
        if candidate.is_alive:
            return candidate
    return None


class PlayerSummary(ApiModel):
    """Player entity embedded in a game relation"""
    id: str
    name: str
    avatar: Optional[str] = None


class GamePlayer(ApiModel):
    """
    Relation between a game and a player.

    ``id`` is the GamePlayer id (turn order, votes, round references);
    ``player_id`` is the Player id (role reveal, host elimination).
    """
    id: str
    game_id: Optional[str] = None
    player_id: str
    role: Optional[PlayerRole] = None
    status: PlayerStatus = PlayerStatus.ALIVE
    turn_order: int = 0
    player: PlayerSummary

    @property
    def name(self) -> str:
        return self.player.name

    @property
    def avatar(self) -> Optional[str]:
        return self.player.avatar

    @property
    def is_alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE


class Game(ApiModel):
    """A game inside a room with its player relations"""
    id: str
    room_id: str
    status: GameStatus = GameStatus.WAITING
    game_mode: GameMode = GameMode.CLASSIC
    undercover_count: int = 1
    mr_white_count: int = 0
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    winner_role: Optional[WinnerRole] = None
    game_players: List[GamePlayer] = Field(default_factory=list)

    @validator('status', pre=True)
    def normalize_status(cls, v):
        return normalize_game_status(v)

    @property
    def ordered_players(self) -> List[GamePlayer]:
        """Players sorted by turn order"""
        return sorted(self.game_players, key=lambda gp: gp.turn_order)

    @property
    def alive_players(self) -> List[GamePlayer]:
        return [gp for gp in self.ordered_players if gp.is_alive]

    @property
    def player_count(self) -> int:
        return len(self.game_players)

    @property
    def is_waiting(self) -> bool:
        return self.status == GameStatus.WAITING

    @property
    def is_active(self) -> bool:
        return self.status == GameStatus.ACTIVE

    @property
    def is_finished(self) -> bool:
        return self.status == GameStatus.FINISHED

    def find(self, game_player_id: str) -> Optional[GamePlayer]:
        """Look up a relation by GamePlayer id"""
        return next((gp for gp in self.game_players if gp.id == game_player_id), None)

    def find_by_player_id(self, player_id: str) -> Optional[GamePlayer]:
        """Look up a relation by Player id"""
        return next((gp for gp in self.game_players if gp.player_id == player_id), None)

    def next_alive_after(self, game_player_id: Optional[str]) -> Optional[GamePlayer]:
        """Next alive player in turn order after the given one"""
        return next_alive_in_turn(self.ordered_players, game_player_id)

    def role_counts(self, alive_only: bool = False) -> Dict[PlayerRole, int]:
        players = self.alive_players if alive_only else self.game_players
        counts = Counter(gp.role for gp in players if gp.role is not None)
        return {role: counts.get(role, 0) for role in PlayerRole}

    @property
    def duration_minutes(self) -> int:
        if self.started_at and self.ended_at:
            return round((self.ended_at - self.started_at).total_seconds() / 60)
        return 0


class GameCreate(ApiModel):
    """创建游戏请求"""
    game_mode: GameMode = GameMode.CLASSIC
    undercover_count: Optional[int] = Field(None, ge=1)
    mr_white_count: Optional[int] = Field(None, ge=0, le=1)


class RoleConfig(ApiModel):
    """Role counts set before the game starts"""
    undercover_count: int = Field(..., ge=0)
    mr_white_count: int = Field(..., ge=0)


class GamePlayerCreate(ApiModel):
    """Add a player to a game by name"""
    name: str = Field(..., min_length=1, max_length=50)
    avatar: Optional[str] = None


class ReorderRequest(ApiModel):
    """New turn order as GamePlayer ids"""
    player_order: List[str]


class RoleReveal(ApiModel):
    """Secret role and word of one player; Mr. White has no word"""
    role: PlayerRole
    word: Optional[str] = None


class EliminationResult(ApiModel):
    """Outcome of a host elimination"""
    eliminated_player_id: Optional[str] = None  # GamePlayer id
    player_id: Optional[str] = None  # Player id
    role: Optional[PlayerRole] = None
    game_finished: bool = False
    winner: Optional[WinnerRole] = None


class GameSummary(ApiModel):
    """Result screen data for a finished game"""
    game_id: str
    game_mode: GameMode
    winner: Optional[WinnerRole] = None
    total_rounds: int = 0
    duration_minutes: int = 0
    players: List[GamePlayer] = Field(default_factory=list)
