"""
In-memory storage for the development server
开发服务器内存存储
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from undercover_client.schemas import (
    GameMode, GameStatus, PlayerRole, PlayerStatus, RoundStatus, WinnerRole
)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class UserRecord:
    id: str
    email: str
    username: str
    password_hash: str
    avatar: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class PlayerRecord:
    id: str
    name: str
    avatar: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class GroupRecord:
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    players: List[PlayerRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class RoomRecord:
    id: str
    owner_id: str
    name: str
    group_id: Optional[str] = None
    game_mode: GameMode = GameMode.CLASSIC
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WordPairRecord:
    id: str
    civilian_word: str
    undercover_word: str
    created_at: datetime = field(default_factory=utcnow)

    def word_for(self, role: PlayerRole) -> Optional[str]:
        """Mr. White gets no word"""
        if role == PlayerRole.UNDERCOVER:
            return self.undercover_word
        if role == PlayerRole.CIVILIAN:
            return self.civilian_word
        return None


@dataclass
class GamePlayerRecord:
    id: str
    game_id: str
    player_id: str
    name: str
    avatar: Optional[str] = None
    turn_order: int = 0
    role: Optional[PlayerRole] = None
    word: Optional[str] = None
    status: PlayerStatus = PlayerStatus.ALIVE

    @property
    def is_alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE


@dataclass
class VoteRecord:
    id: str
    round_id: str
    voter_id: str
    voted_for_id: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class RoundRecord:
    id: str
    game_id: str
    round_number: int
    starter_id: Optional[str] = None
    status: RoundStatus = RoundStatus.DESCRIBING
    eliminated_player_id: Optional[str] = None
    votes: List[VoteRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class GameRecord:
    id: str
    room_id: str
    owner_id: str
    game_mode: GameMode = GameMode.CLASSIC
    undercover_count: int = 1
    mr_white_count: int = 0
    status: GameStatus = GameStatus.WAITING
    players: List[GamePlayerRecord] = field(default_factory=list)
    rounds: List[RoundRecord] = field(default_factory=list)
    word_pair: Optional[WordPairRecord] = None
    winner_role: Optional[WinnerRole] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def ordered_players(self) -> List[GamePlayerRecord]:
        return sorted(self.players, key=lambda gp: gp.turn_order)

    @property
    def alive_players(self) -> List[GamePlayerRecord]:
        return [gp for gp in self.ordered_players if gp.is_alive]

    @property
    def current_round(self) -> Optional[RoundRecord]:
        return self.rounds[-1] if self.rounds else None

    def find(self, game_player_id: str) -> Optional[GamePlayerRecord]:
        return next((gp for gp in self.players if gp.id == game_player_id), None)

    def find_by_player_id(self, player_id: str) -> Optional[GamePlayerRecord]:
        return next((gp for gp in self.players if gp.player_id == player_id), None)


DEFAULT_WORD_PAIRS = [
    ("apple", "pear"),
    ("coffee", "tea"),
    ("cat", "tiger"),
    ("piano", "guitar"),
    ("beach", "desert"),
]


class MemoryStore:
    """Everything the development server knows; lost on restart"""

    def __init__(self, seed_words: bool = True):
        self.users: Dict[str, UserRecord] = {}
        self.groups: Dict[str, GroupRecord] = {}
        self.rooms: Dict[str, RoomRecord] = {}
        self.games: Dict[str, GameRecord] = {}
        self.words: Dict[str, WordPairRecord] = {}
        if seed_words:
            for civilian, undercover in DEFAULT_WORD_PAIRS:
                self.add_word(civilian, undercover)

    def add_word(self, civilian_word: str, undercover_word: str) -> WordPairRecord:
        record = WordPairRecord(id=new_id(), civilian_word=civilian_word, undercover_word=undercover_word)
        self.words[record.id] = record
        return record

    def user_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.lower()
        return next((u for u in self.users.values() if u.email.lower() == email), None)
