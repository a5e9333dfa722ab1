"""
Game setup service
创建游戏：从房间分组导入玩家、同配置再来一局、结果汇总
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from undercover_client.core.exceptions import UndercoverError
from undercover_client.schemas import (
    Game, GameCreate, GameHistory, GameMode, GamePlayer, GamePlayerCreate,
    GameSummary
)
from undercover_client.services.notices import ErrorNotice, notice_for
from undercover_client.services.sync import ResourceSync

logger = logging.getLogger(__name__)


@dataclass
class GameSetupResult:
    """A created game and how the roster transfer went"""
    game: Game
    added: List[GamePlayer] = field(default_factory=list)
    transfer_error: Optional[ErrorNotice] = None

    @property
    def complete(self) -> bool:
        return self.transfer_error is None


def default_mr_white_count(mode: GameMode) -> int:
    return 1 if mode == GameMode.EXTENDED else 0


class GameSetupService:
    """Creates games and fills them with players"""

    def __init__(self, sync: ResourceSync):
        self.sync = sync

    async def create_game_from_room(
        self,
        room_id: str,
        game_mode: Optional[GameMode] = None,
        undercover_count: int = 1,
        mr_white_count: Optional[int] = None,
    ) -> GameSetupResult:
        """
        Create a game in the room and copy the room group's players into it.

        Creation errors propagate. A failure while adding players leaves
        the game in place and is reported on the result.
        """
        room = await self.sync.room(room_id)
        mode = game_mode or room.game_mode
        if mr_white_count is None:
            mr_white_count = default_mr_white_count(mode)

        game = await self.sync.create_game(
            room_id,
            GameCreate(game_mode=mode, undercover_count=undercover_count, mr_white_count=mr_white_count),
        )
        logger.info(f"Created game {game.id} in room {room_id} ({mode.value})")

        players: List[GamePlayerCreate] = []
        if room.group_id:
            group = room.group if room.group is not None else await self.sync.group(room.group_id)
            players = [GamePlayerCreate(name=p.name, avatar=p.avatar) for p in group.players]
        else:
            logger.info(f"Room {room_id} has no group, game {game.id} starts empty")

        return await self._transfer(game, players)

    async def create_rematch(self, finished: Game) -> GameSetupResult:
        """New game in the same room with the same mode, counts and roster"""
        game = await self.sync.create_game(
            finished.room_id,
            GameCreate(
                game_mode=finished.game_mode,
                undercover_count=finished.undercover_count,
                mr_white_count=finished.mr_white_count,
            ),
        )
        logger.info(f"Created rematch {game.id} of game {finished.id}")
        players = [GamePlayerCreate(name=gp.name, avatar=gp.avatar) for gp in finished.ordered_players]
        return await self._transfer(game, players)

    async def _transfer(self, game: Game, players: List[GamePlayerCreate]) -> GameSetupResult:
        if not players:
            return GameSetupResult(game=game)
        result = GameSetupResult(game=game)
        try:
            result.added = await self.sync.add_players_to_game(game.id, players)
        except UndercoverError as e:
            result.transfer_error = notice_for(e, "add players to the new game", logger)
        try:
            result.game = await self.sync.game(game.id, force=True)
        except UndercoverError as e:
            logger.warning(f"Could not reload game {game.id} after adding players: {e}")
        return result

    async def summarize(self, game: Game, history: Optional[GameHistory] = None) -> GameSummary:
        """Result screen data; history is fetched when not given"""
        if history is None:
            history = await self.sync.history(game.id)
        return GameSummary(
            game_id=game.id,
            game_mode=game.game_mode,
            winner=game.winner_role,
            total_rounds=len(history.rounds),
            duration_minutes=game.duration_minutes,
            players=game.ordered_players,
        )
