# Pydantic schemas
from .common import (
    ApiModel, GameMode, GameStatus, PlayerRole, PlayerStatus, RoundStatus,
    WinnerRole, MessageResponse, normalize_game_status
)
from .user import User, LoginCredentials, RegisterData, AuthResponse
from .group import Player, PlayerInput, Group, GroupCreate, GroupUpdate
from .room import Room, RoomCreate
from .game import (
    PlayerSummary, GamePlayer, Game, GameCreate, RoleConfig, GamePlayerCreate,
    ReorderRequest, RoleReveal, EliminationResult, GameSummary
)
from .round import Vote, VoteCreate, Round, RoundResult, GameHistory
from .word_pair import WordPair, WordPairCreate, WordUpload

__all__ = [
    # Common
    "ApiModel", "GameMode", "GameStatus", "PlayerRole", "PlayerStatus",
    "RoundStatus", "WinnerRole", "MessageResponse", "normalize_game_status",

    # Auth
    "User", "LoginCredentials", "RegisterData", "AuthResponse",

    # Groups and rooms
    "Player", "PlayerInput", "Group", "GroupCreate", "GroupUpdate",
    "Room", "RoomCreate",

    # Games
    "PlayerSummary", "GamePlayer", "Game", "GameCreate", "RoleConfig",
    "GamePlayerCreate", "ReorderRequest", "RoleReveal", "EliminationResult",
    "GameSummary",

    # Rounds
    "Vote", "VoteCreate", "Round", "RoundResult", "GameHistory",

    # Words
    "WordPair", "WordPairCreate", "WordUpload",
]
