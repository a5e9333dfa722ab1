"""
Undercover API client
资源客户端 - 每个 API 能力对应一个协程
"""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from undercover_client.core.exceptions import UnknownServerError
from undercover_client.schemas import (
    AuthResponse, EliminationResult, Game, GameCreate, GameHistory,
    GamePlayer, GamePlayerCreate, Group, GroupCreate, GroupUpdate,
    LoginCredentials, RegisterData, ReorderRequest, RoleConfig, RoleReveal,
    Room, RoomCreate, Round, RoundResult, User, Vote, VoteCreate, WordPair,
    WordPairCreate, WordUpload
)
from undercover_client.services.http import ApiTransport
from undercover_client.utils.session import SessionStore

logger = logging.getLogger(__name__)


def _parse(model, data):
    """Validate a response body, reporting malformed payloads as server errors"""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.error(f"Unexpected {model.__name__} payload: {e}")
        raise UnknownServerError(f"Unexpected {model.__name__} payload from server") from e


def _parse_list(model, data) -> list:
    if not isinstance(data, list):
        raise UnknownServerError(f"Expected a list of {model.__name__}")
    return [_parse(model, item) for item in data]


class UndercoverApiClient:
    """
    Typed request/response wrappers for the Undercover API.

    Has no cache of its own; ``ResourceSync`` layers caching and
    invalidation on top.
    """

    def __init__(
        self,
        session: SessionStore,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.session = session
        self.http = ApiTransport(session, base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "UndercoverApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    # ---- auth -------------------------------------------------------------

    async def register(self, data: RegisterData) -> AuthResponse:
        body = await self.http.post("/auth/register", json=data.to_payload(), auth=False)
        result = _parse(AuthResponse, body)
        self._remember(result)
        return result

    async def login(self, credentials: LoginCredentials) -> AuthResponse:
        body = await self.http.post("/auth/login", json=credentials.to_payload(), auth=False)
        result = _parse(AuthResponse, body)
        self._remember(result)
        return result

    def _remember(self, result: AuthResponse) -> None:
        self.session.set_credential(result.access_token)
        self.session.profile = result.user
        logger.info(f"Logged in as {result.user.username}")

    def logout(self) -> None:
        """Local only; the API keeps no server-side session"""
        self.session.clear()

    async def get_profile(self) -> User:
        user = _parse(User, await self.http.get("/auth/profile"))
        self.session.profile = user
        return user

    # ---- groups -----------------------------------------------------------

    async def list_groups(self) -> List[Group]:
        return _parse_list(Group, await self.http.get("/groups"))

    async def get_group(self, group_id: str) -> Group:
        return _parse(Group, await self.http.get(f"/groups/{group_id}"))

    async def create_group(self, data: GroupCreate) -> Group:
        return _parse(Group, await self.http.post("/groups", json=data.to_payload()))

    async def update_group(self, group_id: str, data: GroupUpdate) -> Group:
        """PUT replaces the group; callers send complete data"""
        return _parse(Group, await self.http.put(f"/groups/{group_id}", json=data.to_payload()))

    async def delete_group(self, group_id: str) -> None:
        await self.http.delete(f"/groups/{group_id}")

    # ---- rooms ------------------------------------------------------------

    async def list_rooms(self) -> List[Room]:
        return _parse_list(Room, await self.http.get("/rooms"))

    async def get_room(self, room_id: str) -> Room:
        return _parse(Room, await self.http.get(f"/rooms/{room_id}"))

    async def create_room(self, data: RoomCreate) -> Room:
        return _parse(Room, await self.http.post("/rooms", json=data.to_payload()))

    # ---- games ------------------------------------------------------------

    async def create_game(self, room_id: str, data: GameCreate) -> Game:
        body = await self.http.post(f"/games/rooms/{room_id}/games", json=data.to_payload())
        return _parse(Game, body)

    async def get_game(self, game_id: str) -> Game:
        return _parse(Game, await self.http.get(f"/games/{game_id}"))

    async def configure_roles(self, game_id: str, config: RoleConfig) -> Game:
        return _parse(Game, await self.http.put(f"/games/{game_id}/roles", json=config.to_payload()))

    async def start_game(self, game_id: str) -> None:
        await self.http.post(f"/games/{game_id}/start")

    async def reorder_game_players(self, game_id: str, game_player_ids: List[str]) -> None:
        """Turn order is a list of GamePlayer ids"""
        payload = ReorderRequest(player_order=list(game_player_ids)).to_payload()
        await self.http.put(f"/games/{game_id}/players/reorder", json=payload)

    async def reveal_role(self, game_id: str, player_id: str) -> RoleReveal:
        """``player_id`` is the Player id"""
        return _parse(RoleReveal, await self.http.get(f"/games/{game_id}/players/{player_id}/role"))

    async def add_player_to_game(self, game_id: str, data: GamePlayerCreate) -> GamePlayer:
        return _parse(GamePlayer, await self.http.post(f"/games/{game_id}/players", json=data.to_payload()))

    async def get_game_history(self, game_id: str) -> GameHistory:
        return _parse(GameHistory, await self.http.get(f"/games/{game_id}/history"))

    # ---- rounds -----------------------------------------------------------

    async def get_current_round(self, game_id: str) -> Optional[Round]:
        body = await self.http.get(f"/games/{game_id}/round")
        return _parse(Round, body) if body else None

    async def list_votes(self, game_id: str) -> List[Vote]:
        return _parse_list(Vote, await self.http.get(f"/games/{game_id}/votes"))

    async def submit_vote(self, game_id: str, vote: VoteCreate) -> Vote:
        return _parse(Vote, await self.http.put(f"/games/{game_id}/votes", json=vote.to_payload()))

    async def process_round(self, game_id: str) -> RoundResult:
        return _parse(RoundResult, await self.http.post(f"/games/{game_id}/round/process"))

    async def next_round(self, game_id: str) -> Round:
        return _parse(Round, await self.http.post(f"/games/{game_id}/round/next"))

    async def eliminate_player(self, game_id: str, player_id: str) -> EliminationResult:
        """Host elimination; ``player_id`` is the Player id"""
        body = await self.http.post(f"/games/{game_id}/players/{player_id}/eliminate")
        return _parse(EliminationResult, body)

    # ---- words ------------------------------------------------------------

    async def list_words(self) -> List[WordPair]:
        return _parse_list(WordPair, await self.http.get("/words"))

    async def create_word(self, data: WordPairCreate) -> WordPair:
        return _parse(WordPair, await self.http.post("/words", json=data.to_payload()))

    async def upload_words(self, data: WordUpload) -> List[WordPair]:
        body = await self.http.post("/words/upload", json=data.to_payload())
        return _parse_list(WordPair, body) if isinstance(body, list) else []

    async def delete_word(self, word_id: str) -> None:
        await self.http.delete(f"/words/{word_id}")

    async def random_word(self) -> WordPair:
        return _parse(WordPair, await self.http.get("/words/random"))
