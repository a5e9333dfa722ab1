"""
Game engine for the development server
谁是卧底游戏引擎 - 角色分配、投票统计、胜负判定
"""

import logging
import random
from typing import Dict, List, Optional

from fastapi import HTTPException, status

from undercover_client.schemas import (
    EliminationResult, Game, GameCreate, GameHistory, GameMode, GamePlayer,
    GameStatus, PlayerRole, PlayerStatus, PlayerSummary, RoleConfig,
    RoleReveal, Round, RoundResult, RoundStatus, Vote, WinnerRole
)
from undercover_client.schemas.game import next_alive_in_turn
from undercover_client.devserver.store import (
    GamePlayerRecord, GameRecord, MemoryStore, RoomRecord, RoundRecord,
    VoteRecord, new_id, utcnow
)

logger = logging.getLogger(__name__)

MIN_PLAYERS = 3


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


# ---- views ----------------------------------------------------------------

def game_player_view(game: GameRecord, gp: GamePlayerRecord) -> GamePlayer:
    """Roles stay hidden until the player is out or the game is over"""
    show_role = game.status == GameStatus.FINISHED or not gp.is_alive
    return GamePlayer(
        id=gp.id,
        game_id=game.id,
        player_id=gp.player_id,
        role=gp.role if show_role else None,
        status=gp.status,
        turn_order=gp.turn_order,
        player=PlayerSummary(id=gp.player_id, name=gp.name, avatar=gp.avatar),
    )


def game_view(game: GameRecord) -> Game:
    return Game(
        id=game.id,
        room_id=game.room_id,
        status=game.status,
        game_mode=game.game_mode,
        undercover_count=game.undercover_count,
        mr_white_count=game.mr_white_count,
        created_at=game.created_at,
        started_at=game.started_at,
        ended_at=game.ended_at,
        winner_role=game.winner_role,
        game_players=[game_player_view(game, gp) for gp in game.ordered_players],
    )


def round_view(round_record: RoundRecord) -> Round:
    return Round(
        id=round_record.id,
        game_id=round_record.game_id,
        round_number=round_record.round_number,
        starter_id=round_record.starter_id,
        status=round_record.status,
        eliminated_player_id=round_record.eliminated_player_id,
        votes=[vote_view(v) for v in round_record.votes],
        created_at=round_record.created_at,
    )


def vote_view(vote: VoteRecord) -> Vote:
    return Vote(
        id=vote.id,
        round_id=vote.round_id,
        voter_id=vote.voter_id,
        voted_for_id=vote.voted_for_id,
        created_at=vote.created_at,
    )


# ---- rules ----------------------------------------------------------------

def check_role_counts(player_count: int, undercover_count: int, mr_white_count: int, mode: GameMode) -> None:
    if player_count < MIN_PLAYERS:
        raise _bad_request(f"At least {MIN_PLAYERS} players are required")
    if undercover_count < 1:
        raise _bad_request("At least one undercover is required")
    if undercover_count * 2 >= player_count:
        raise _bad_request("Undercover players must be fewer than half of the players")
    if mr_white_count not in (0, 1):
        raise _bad_request("Mr. White count must be 0 or 1")
    if mr_white_count and mode != GameMode.EXTENDED:
        raise _bad_request("Mr. White requires extended mode")
    if player_count - undercover_count - mr_white_count < 1:
        raise _bad_request("At least one civilian is required")


def decide_winner(game: GameRecord) -> Optional[WinnerRole]:
    """
    Civilians win once no impostor is alive. Impostors win when alive
    civilians are no more than alive impostors, or only two players remain.
    """
    alive = game.alive_players
    undercover = sum(1 for gp in alive if gp.role == PlayerRole.UNDERCOVER)
    mr_white = sum(1 for gp in alive if gp.role == PlayerRole.MR_WHITE)
    civilians = sum(1 for gp in alive if gp.role == PlayerRole.CIVILIAN)

    if undercover == 0 and mr_white == 0:
        return WinnerRole.CIVILIANS
    if civilians <= undercover + mr_white or len(alive) <= 2:
        return WinnerRole.UNDERCOVER if undercover else WinnerRole.MR_WHITE
    return None


def next_alive_after(game: GameRecord, game_player_id: Optional[str]) -> Optional[GamePlayerRecord]:
    return next_alive_in_turn(game.ordered_players, game_player_id)


class GameEngine:
    """游戏引擎 - 所有状态变更都在这里"""

    def __init__(self, store: MemoryStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    def create_game(self, room: RoomRecord, owner_id: str, data: GameCreate) -> GameRecord:
        mode = data.game_mode
        mr_white = data.mr_white_count
        if mr_white is None:
            mr_white = 1 if mode == GameMode.EXTENDED else 0
        game = GameRecord(
            id=new_id(),
            room_id=room.id,
            owner_id=owner_id,
            game_mode=mode,
            undercover_count=data.undercover_count or 1,
            mr_white_count=mr_white,
        )
        self.store.games[game.id] = game
        logger.info(f"Game {game.id} created in room {room.id} ({mode.value})")
        return game

    def _require_status(self, game: GameRecord, expected: GameStatus, detail: str) -> None:
        if game.status != expected:
            raise _conflict(detail)

    def add_player(self, game: GameRecord, name: str, avatar: Optional[str]) -> GamePlayerRecord:
        self._require_status(game, GameStatus.WAITING, "Players can only join before the game starts")
        gp = GamePlayerRecord(
            id=new_id(),
            game_id=game.id,
            player_id=new_id(),
            name=name.strip(),
            avatar=avatar,
            turn_order=max((p.turn_order for p in game.players), default=-1) + 1,
        )
        game.players.append(gp)
        return gp

    def configure_roles(self, game: GameRecord, config: RoleConfig) -> GameRecord:
        self._require_status(game, GameStatus.WAITING, "Roles can only be set before the game starts")
        game.undercover_count = config.undercover_count
        game.mr_white_count = config.mr_white_count
        return game

    def reorder(self, game: GameRecord, order: List[str]) -> GameRecord:
        self._require_status(game, GameStatus.WAITING, "Turn order can only change before the game starts")
        known = {gp.id for gp in game.players}
        if len(order) != len(set(order)) or set(order) != known:
            raise _bad_request("Player order must list every game player exactly once")
        for index, gp_id in enumerate(order):
            game.find(gp_id).turn_order = index
        return game

    def start_game(self, game: GameRecord) -> GameRecord:
        self._require_status(game, GameStatus.WAITING, "Game has already started")
        check_role_counts(len(game.players), game.undercover_count, game.mr_white_count, game.game_mode)
        if not self.store.words:
            raise _conflict("No word pairs available")

        word_pair = self.rng.choice(list(self.store.words.values()))
        self._assign_roles(game, word_pair)
        game.status = GameStatus.ACTIVE
        game.started_at = utcnow()
        first = game.alive_players[0]
        game.rounds.append(RoundRecord(id=new_id(), game_id=game.id, round_number=1, starter_id=first.id))
        logger.info(f"Game {game.id} started with {len(game.players)} players")
        return game

    def _assign_roles(self, game: GameRecord, word_pair) -> None:
        """随机分配角色 - exact requested counts, Mr. White gets no word"""
        shuffled = list(game.players)
        self.rng.shuffle(shuffled)
        game.word_pair = word_pair
        for index, gp in enumerate(shuffled):
            if index < game.undercover_count:
                role = PlayerRole.UNDERCOVER
            elif index < game.undercover_count + game.mr_white_count:
                role = PlayerRole.MR_WHITE
            else:
                role = PlayerRole.CIVILIAN
            gp.role = role
            gp.word = word_pair.word_for(role)
            gp.status = PlayerStatus.ALIVE

    def reveal(self, game: GameRecord, player_id: str) -> RoleReveal:
        if game.status == GameStatus.WAITING:
            raise _conflict("Roles are assigned when the game starts")
        gp = game.find_by_player_id(player_id)
        if gp is None:
            raise _not_found("Player not found in this game")
        return RoleReveal(role=gp.role, word=gp.word)

    def _open_round(self, game: GameRecord) -> RoundRecord:
        current = game.current_round
        if current is None or current.status == RoundStatus.COMPLETED:
            raise _conflict("No round in progress")
        return current

    def submit_vote(self, game: GameRecord, voter_id: str, voted_for_id: str) -> VoteRecord:
        self._require_status(game, GameStatus.ACTIVE, "Game is not in progress")
        current = self._open_round(game)
        voter = game.find(voter_id)
        target = game.find(voted_for_id)
        if voter is None or target is None:
            raise _not_found("Player not found in this game")
        if not voter.is_alive or not target.is_alive:
            raise _bad_request("Only alive players can vote or be voted for")

        current.status = RoundStatus.VOTING
        existing = next((v for v in current.votes if v.voter_id == voter_id), None)
        if existing is not None:
            existing.voted_for_id = voted_for_id
            return existing
        vote = VoteRecord(id=new_id(), round_id=current.id, voter_id=voter_id, voted_for_id=voted_for_id)
        current.votes.append(vote)
        return vote

    def _count_votes(self, game: GameRecord, current: RoundRecord) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for vote in current.votes:
            counts[vote.voted_for_id] = counts.get(vote.voted_for_id, 0) + 1
        return counts

    def process_round(self, game: GameRecord) -> RoundResult:
        """统计投票 - ties are broken at random, no votes eliminates a random player"""
        self._require_status(game, GameStatus.ACTIVE, "Game is not in progress")
        current = self._open_round(game)
        counts = self._count_votes(game, current)
        if counts:
            top = max(counts.values())
            candidates = [gp_id for gp_id, count in counts.items() if count == top]
            eliminated = game.find(self.rng.choice(candidates))
        else:
            eliminated = self.rng.choice(game.alive_players)

        winner = self._eliminate(game, eliminated)
        return RoundResult(
            round_id=current.id,
            round_number=current.round_number,
            eliminated_player_id=eliminated.id,
            eliminated_role=eliminated.role,
            vote_counts=counts,
            game_finished=winner is not None,
            winner=winner,
        )

    def eliminate_player(self, game: GameRecord, player_id: str) -> EliminationResult:
        self._require_status(game, GameStatus.ACTIVE, "Game is not in progress")
        gp = game.find_by_player_id(player_id)
        if gp is None:
            raise _not_found("Player not found in this game")
        if not gp.is_alive:
            raise _conflict("Player is already eliminated")
        self._open_round(game)
        winner = self._eliminate(game, gp)
        return EliminationResult(
            eliminated_player_id=gp.id,
            player_id=gp.player_id,
            role=gp.role,
            game_finished=winner is not None,
            winner=winner,
        )

    def _eliminate(self, game: GameRecord, gp: GamePlayerRecord) -> Optional[WinnerRole]:
        gp.status = PlayerStatus.ELIMINATED
        current = game.current_round
        current.status = RoundStatus.COMPLETED
        current.eliminated_player_id = gp.id
        logger.info(f"Game {game.id} round {current.round_number}: {gp.name} ({gp.role.value}) eliminated")

        winner = decide_winner(game)
        if winner is not None:
            game.status = GameStatus.FINISHED
            game.ended_at = utcnow()
            game.winner_role = winner
            logger.info(f"Game {game.id} finished, winner: {winner.value}")
        return winner

    def next_round(self, game: GameRecord) -> RoundRecord:
        self._require_status(game, GameStatus.ACTIVE, "Game is not in progress")
        current = game.current_round
        if current is not None and current.status != RoundStatus.COMPLETED:
            raise _conflict("Current round is still in progress")
        previous_starter = current.starter_id if current else None
        starter = next_alive_after(game, previous_starter)
        new_round = RoundRecord(
            id=new_id(),
            game_id=game.id,
            round_number=(current.round_number if current else 0) + 1,
            starter_id=starter.id if starter else None,
        )
        game.rounds.append(new_round)
        return new_round

    def history(self, game: GameRecord) -> GameHistory:
        return GameHistory(game_id=game.id, rounds=[round_view(r) for r in game.rounds])
