"""
Resource sync layer
缓存读取 + 变更后失效相关键
"""

import logging
from typing import List, Optional, Sequence

from undercover_client.core.exceptions import UndercoverError
from undercover_client.schemas import (
    EliminationResult, Game, GameCreate, GameHistory, GamePlayer,
    GamePlayerCreate, Group, GroupCreate, GroupUpdate, LoginCredentials,
    PlayerInput, RegisterData, RoleConfig, RoleReveal, Room, RoomCreate,
    Round, RoundResult, User, Vote, VoteCreate, WordPair, WordPairCreate,
    WordUpload
)
from undercover_client.services.api_client import UndercoverApiClient
from undercover_client.services.cache import CacheKey, EntityCache

logger = logging.getLogger(__name__)

PROFILE_KEY: CacheKey = ("auth", "profile")
GROUPS_KEY: CacheKey = ("groups",)
ROOMS_KEY: CacheKey = ("rooms",)
WORDS_KEY: CacheKey = ("words",)


def group_key(group_id: str) -> CacheKey:
    return ("groups", group_id)


def room_key(room_id: str) -> CacheKey:
    return ("rooms", room_id)


def game_key(game_id: str) -> CacheKey:
    return ("games", game_id)


def round_key(game_id: str) -> CacheKey:
    return ("games", game_id, "round")


def votes_key(game_id: str) -> CacheKey:
    return ("games", game_id, "votes")


def history_key(game_id: str) -> CacheKey:
    return ("games", game_id, "history")


class ResourceSync:
    """
    Read-through / write-through access to server state.

    Workflow code reads through here and issues commands through here; it
    never writes the cache itself. Each mutation invalidates the keys it
    affects plus the aggregates embedding them (a room embeds its group).
    """

    def __init__(self, api: UndercoverApiClient, cache: Optional[EntityCache] = None):
        self.api = api
        self.cache = cache or EntityCache()

    @property
    def session(self):
        return self.api.session

    # ---- auth -------------------------------------------------------------

    async def login(self, credentials: LoginCredentials) -> User:
        result = await self.api.login(credentials)
        self.cache.set(PROFILE_KEY, result.user)
        return result.user

    async def register(self, data: RegisterData) -> User:
        result = await self.api.register(data)
        self.cache.set(PROFILE_KEY, result.user)
        return result.user

    def logout(self) -> None:
        self.api.logout()
        self.cache.clear()

    async def profile(self, force: bool = False) -> User:
        return await self.cache.get(PROFILE_KEY, self.api.get_profile, force=force)

    # ---- groups -----------------------------------------------------------

    async def groups(self, force: bool = False) -> List[Group]:
        return await self.cache.get(GROUPS_KEY, self.api.list_groups, force=force)

    async def group(self, group_id: str, force: bool = False) -> Group:
        return await self.cache.get(group_key(group_id), lambda: self.api.get_group(group_id), force=force)

    async def create_group(self, data: GroupCreate) -> Group:
        group = await self.api.create_group(data)
        await self.cache.invalidate(GROUPS_KEY)
        return group

    async def update_group(self, group_id: str, data: GroupUpdate) -> Group:
        """
        Partial update. The API replaces the whole group, so the fields not
        given are taken from the current server copy first.
        """
        if not data.is_complete:
            current = await self.api.get_group(group_id)
            data = GroupUpdate(
                name=data.name or current.name,
                description=data.description if data.description is not None else current.description,
                players=data.players if data.players is not None else [p.to_input() for p in current.players],
            )
        group = await self.api.update_group(group_id, data)
        await self._group_changed(group_id)
        return group

    async def add_player_to_group(self, group_id: str, player: PlayerInput) -> Group:
        current = await self.api.get_group(group_id)
        players = [p.to_input() for p in current.players] + [player]
        group = await self.api.update_group(
            group_id,
            GroupUpdate(name=current.name, description=current.description, players=players),
        )
        await self._group_changed(group_id)
        return group

    async def reorder_group_players(self, group_id: str, player_ids: Sequence[str]) -> Group:
        """Send the group's players in the order of ``player_ids``"""
        current = await self.api.get_group(group_id)
        by_id = {p.id: p for p in current.players}
        missing = [pid for pid in player_ids if pid not in by_id]
        if missing:
            logger.warning(f"Group {group_id} reorder references unknown players {missing}")
        requested = set(player_ids)
        ordered = [by_id[pid].to_input() for pid in player_ids if pid in by_id]
        # players added on the server meanwhile keep their place at the end
        ordered += [p.to_input() for p in current.players if p.id not in requested]
        group = await self.api.update_group(
            group_id,
            GroupUpdate(name=current.name, description=current.description, players=ordered),
        )
        await self._group_changed(group_id)
        return group

    async def delete_group(self, group_id: str) -> None:
        await self.api.delete_group(group_id)
        await self._group_changed(group_id)

    async def _group_changed(self, group_id: str) -> None:
        await self.cache.invalidate(GROUPS_KEY, group_key(group_id), ROOMS_KEY)

    # ---- rooms ------------------------------------------------------------

    async def rooms(self, force: bool = False) -> List[Room]:
        return await self.cache.get(ROOMS_KEY, self.api.list_rooms, force=force)

    async def room(self, room_id: str, force: bool = False) -> Room:
        return await self.cache.get(room_key(room_id), lambda: self.api.get_room(room_id), force=force)

    async def create_room(self, data: RoomCreate) -> Room:
        room = await self.api.create_room(data)
        await self.cache.invalidate(ROOMS_KEY, GROUPS_KEY)
        return room

    # ---- games ------------------------------------------------------------

    async def game(self, game_id: str, force: bool = False) -> Game:
        return await self.cache.get(game_key(game_id), lambda: self.api.get_game(game_id), force=force)

    async def history(self, game_id: str, force: bool = False) -> GameHistory:
        return await self.cache.get(
            history_key(game_id), lambda: self.api.get_game_history(game_id), force=force
        )

    async def create_game(self, room_id: str, data: GameCreate) -> Game:
        game = await self.api.create_game(room_id, data)
        await self.cache.invalidate(room_key(room_id))
        return game

    async def configure_roles(self, game_id: str, config: RoleConfig) -> Game:
        game = await self.api.configure_roles(game_id, config)
        await self._game_changed(game_id)
        return game

    async def start_game(self, game_id: str) -> None:
        await self.api.start_game(game_id)
        await self._game_changed(game_id)

    async def reorder_game_players(self, game_id: str, game_player_ids: Sequence[str]) -> None:
        await self.api.reorder_game_players(game_id, list(game_player_ids))
        await self._game_changed(game_id)

    async def reveal_role(self, game_id: str, player_id: str) -> RoleReveal:
        # secrets are never cached
        return await self.api.reveal_role(game_id, player_id)

    async def add_player_to_game(self, game_id: str, data: GamePlayerCreate) -> GamePlayer:
        game_player = await self.api.add_player_to_game(game_id, data)
        await self._game_changed(game_id)
        return game_player

    async def add_players_to_game(self, game_id: str, players: Sequence[GamePlayerCreate]) -> List[GamePlayer]:
        """
        Add players one by one in order. Stops at the first failure and
        re-raises it with the player's name in the message.
        """
        added = []
        logger.info(f"Adding {len(players)} players to game {game_id}")
        try:
            for index, player in enumerate(players, start=1):
                try:
                    added.append(await self.api.add_player_to_game(game_id, player))
                except UndercoverError as e:
                    logger.error(f"Failed to add player {index}/{len(players)} '{player.name}' to game {game_id}: {e}")
                    e.message = f'Failed to add player "{player.name}": {e.message}'
                    e.args = (e.message,)
                    raise
        finally:
            if added:
                await self._game_changed(game_id)
        return added

    # ---- rounds -----------------------------------------------------------

    async def current_round(self, game_id: str, force: bool = False) -> Optional[Round]:
        return await self.cache.get(round_key(game_id), lambda: self.api.get_current_round(game_id), force=force)

    async def votes(self, game_id: str, force: bool = False) -> List[Vote]:
        return await self.cache.get(votes_key(game_id), lambda: self.api.list_votes(game_id), force=force)

    async def submit_vote(self, game_id: str, vote: VoteCreate) -> Vote:
        result = await self.api.submit_vote(game_id, vote)
        await self.cache.invalidate(votes_key(game_id), round_key(game_id))
        return result

    async def process_round(self, game_id: str) -> RoundResult:
        result = await self.api.process_round(game_id)
        await self._game_changed(game_id)
        return result

    async def next_round(self, game_id: str) -> Round:
        new_round = await self.api.next_round(game_id)
        await self._game_changed(game_id)
        self.cache.set(round_key(game_id), new_round)
        return new_round

    async def eliminate_player(self, game_id: str, player_id: str) -> EliminationResult:
        result = await self.api.eliminate_player(game_id, player_id)
        await self._game_changed(game_id)
        return result

    async def _game_changed(self, game_id: str) -> None:
        # game subtree: the game itself, its round, votes and history
        await self.cache.invalidate(game_key(game_id))

    # ---- words ------------------------------------------------------------

    async def words(self, force: bool = False) -> List[WordPair]:
        return await self.cache.get(WORDS_KEY, self.api.list_words, force=force)

    async def create_word(self, data: WordPairCreate) -> WordPair:
        word = await self.api.create_word(data)
        await self.cache.invalidate(WORDS_KEY)
        return word

    async def upload_words(self, data: WordUpload) -> List[WordPair]:
        words = await self.api.upload_words(data)
        await self.cache.invalidate(WORDS_KEY)
        return words

    async def delete_word(self, word_id: str) -> None:
        await self.api.delete_word(word_id)
        await self.cache.invalidate(WORDS_KEY)

    async def random_word(self) -> WordPair:
        # explicit fetch every time, never served from cache
        return await self.api.random_word()
