"""
Game lifecycle state machine
游戏流程状态机：配置 -> 分配角色 -> 逐个查看身份 -> 回合(描述/投票/结算) -> 结束
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set

from undercover_client.core.config import settings
from undercover_client.core.exceptions import BusyError, UndercoverError, ValidationError
from undercover_client.schemas import (
    Game, GameMode, GamePlayer, GameSummary, PlayerRole, RoleConfig,
    RoleReveal, Round, RoundStatus, VoteCreate, WinnerRole
)
from undercover_client.services import reorder
from undercover_client.services.game_setup import GameSetupService
from undercover_client.services.notices import ErrorNotice, notice_for
from undercover_client.services.sync import ResourceSync, game_key

logger = logging.getLogger(__name__)


class LifecyclePhase(str, Enum):
    """游戏阶段"""
    CONFIGURING = "configuring"
    ROLES_ASSIGNING = "roles_assigning"
    REVEALING = "revealing"
    ROUND = "round"
    FINISHED = "finished"


class RoundStage(str, Enum):
    """回合内阶段"""
    DESCRIBING = "describing"
    VOTING = "voting"
    RESOLVED = "resolved"


_STAGE_FOR_STATUS = {
    RoundStatus.DESCRIBING: RoundStage.DESCRIBING,
    RoundStatus.VOTING: RoundStage.VOTING,
    RoundStatus.COMPLETED: RoundStage.RESOLVED,
}


@dataclass(frozen=True)
class LifecycleState:
    """Whole machine state; replaced, never mutated"""
    phase: LifecyclePhase
    reveal_index: Optional[int] = None
    round_stage: Optional[RoundStage] = None
    round_number: int = 0

    def __str__(self) -> str:
        if self.phase == LifecyclePhase.REVEALING:
            return f"revealing({self.reveal_index})"
        if self.phase == LifecyclePhase.ROUND:
            return f"round {self.round_number}({self.round_stage.value})"
        return self.phase.value


@dataclass(frozen=True)
class Description:
    """A description typed during the describing stage; kept locally only"""
    round_number: int
    speaker_id: Optional[str]
    text: str


@dataclass(frozen=True)
class RoundOutcome:
    """Who left the game at the end of a round and what they were"""
    eliminated_player_id: Optional[str] = None  # GamePlayer id
    eliminated_name: Optional[str] = None
    role: Optional[PlayerRole] = None
    game_finished: bool = False
    winner: Optional[WinnerRole] = None
    by_host: bool = False


class RevealGate:
    """
    Two-tap reveal: the first tap fetches and arms, the second (local) tap
    shows. ``revealed`` stays None until shown.
    """

    def __init__(self):
        self._secret: Optional[RoleReveal] = None
        self.shown = False

    @property
    def armed(self) -> bool:
        return self._secret is not None

    @property
    def revealed(self) -> Optional[RoleReveal]:
        return self._secret if self.shown else None

    def arm(self, secret: RoleReveal) -> None:
        self._secret = secret

    def show(self) -> bool:
        if self._secret is None:
            return False
        self.shown = True
        return True

    def clear(self) -> None:
        self._secret = None
        self.shown = False


def validate_role_counts(player_count: int, undercover_count: int, mr_white_count: int, game_mode: GameMode) -> int:
    """
    Check role counts for a game of ``player_count`` players and return the
    civilian count. Raises ValidationError naming the first broken rule.
    """
    if player_count < settings.MIN_PLAYERS:
        raise ValidationError(f"At least {settings.MIN_PLAYERS} players are needed, the game has {player_count}")
    if undercover_count < 1:
        raise ValidationError("At least one undercover player is required")
    if undercover_count * 2 >= player_count:
        raise ValidationError(
            f"Undercover players must be fewer than half of the players "
            f"({undercover_count} undercover for {player_count} players)"
        )
    if mr_white_count not in (0, 1):
        raise ValidationError("Mr. White count must be 0 or 1")
    if mr_white_count and game_mode != GameMode.EXTENDED:
        raise ValidationError("Mr. White is only available in extended mode")
    civilians = player_count - undercover_count - mr_white_count
    if civilians < 1:
        raise ValidationError("At least one civilian is required")
    return civilians


class GameLifecycle:
    """
    Drives one game from configuration to its result against the API.

    Every transition either completes or leaves the state exactly as it was,
    with ``error`` describing what went wrong. One request per action key
    may be in flight; a second trigger is refused with a busy notice.
    After ``close()`` late responses are dropped.
    """

    def __init__(self, sync: ResourceSync, game_id: str, setup: Optional[GameSetupService] = None):
        self.sync = sync
        self.game_id = game_id
        self.setup = setup or GameSetupService(sync)

        self.game: Optional[Game] = None
        self.undercover_count = 1
        self.mr_white_count = 0
        self.error: Optional[ErrorNotice] = None

        self.gate = RevealGate()
        self.current_round: Optional[Round] = None
        self.descriptions: List[Description] = []
        self.votes: Dict[str, str] = {}
        self.last_outcome: Optional[RoundOutcome] = None
        self.winner: Optional[WinnerRole] = None

        self._state = LifecycleState(LifecyclePhase.CONFIGURING)
        self._eliminated: Set[str] = set()
        self._inflight: Set[Hashable] = set()
        self._listeners: List[Callable[[LifecycleState], None]] = []
        self._alive = True
        self._unsubscribe = sync.cache.subscribe(
            game_key(game_id), self._on_game_entry, fetcher=lambda: sync.api.get_game(game_id)
        )

    # ---- state plumbing ---------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def phase(self) -> LifecyclePhase:
        return self._state.phase

    @property
    def round_stage(self) -> Optional[RoundStage]:
        return self._state.round_stage

    @property
    def round_number(self) -> int:
        return self._state.round_number

    @property
    def is_alive(self) -> bool:
        return self._alive

    def is_busy(self, key: Hashable) -> bool:
        return key in self._inflight

    def add_listener(self, callback: Callable[[LifecycleState], None]) -> None:
        self._listeners.append(callback)

    def _transition(self, new_state: LifecycleState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Game {self.game_id}: {old_state} -> {new_state}")
        for callback in list(self._listeners):
            callback(new_state)

    def _on_game_entry(self, entry) -> None:
        if self._alive and isinstance(entry.value, Game):
            self.game = entry.value
            self._follow_finished(entry.value)

    def _follow_finished(self, game: Game) -> None:
        # a transition in flight applies the ending itself
        if not game.is_finished or self._inflight or not self._alive:
            return
        if self._state.phase == LifecyclePhase.FINISHED:
            return
        logger.info(f"Game {self.game_id} finished on the server")
        self._finish(game.winner_role)

    def _in(self, phase: LifecyclePhase, *stages: RoundStage) -> bool:
        if self._state.phase != phase:
            return False
        return not stages or self._state.round_stage in stages

    def _refuse(self, action: str, message: str, error_class=ValidationError) -> bool:
        self.error = notice_for(error_class(message), action, logger)
        return False

    async def _run(
        self,
        action: str,
        request: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], Optional[bool]],
        key: Optional[Hashable] = None,
        pending: Optional[LifecycleState] = None,
    ) -> bool:
        """
        Run one network-backed transition: refuse when the same key is in
        flight, restore the prior state on failure, drop the response when
        the machine was closed meanwhile.
        """
        key = key if key is not None else action
        if key in self._inflight:
            return self._refuse(action, "Still waiting for the previous request", BusyError)

        before = self._state
        self._inflight.add(key)
        if pending is not None:
            self._transition(pending)
        try:
            result = await request()
        except UndercoverError as e:
            if self._alive:
                if pending is not None and self._state == pending:
                    self._transition(before)
                self.error = notice_for(e, action, logger)
            return False
        finally:
            self._inflight.discard(key)

        if not self._alive:
            logger.debug(f"Game {self.game_id}: response to '{action}' arrived after close, dropped")
            return False
        self.error = None
        return apply(result) is not False

    def close(self) -> None:
        """Stop applying responses; call when the consuming screen goes away"""
        self._alive = False
        self._unsubscribe()
        self.gate.clear()

    # ---- players ----------------------------------------------------------

    @property
    def players(self) -> List[GamePlayer]:
        return self.game.ordered_players if self.game else []

    def is_player_alive(self, game_player: GamePlayer) -> bool:
        return game_player.is_alive and game_player.id not in self._eliminated

    @property
    def alive_players(self) -> List[GamePlayer]:
        return [gp for gp in self.players if self.is_player_alive(gp)]

    # ---- loading ----------------------------------------------------------

    async def load(self) -> bool:
        """Fetch the game and resume at the phase its server status implies"""

        async def request():
            game = await self.sync.game(self.game_id, force=True)
            current = None
            if game.is_active:
                current = await self.sync.current_round(self.game_id, force=True)
            return game, current

        def apply(result):
            game, current = result
            self.game = game
            if game.is_finished:
                self._finish(game.winner_role)
            elif game.is_active:
                self._enter_round(current)
            else:
                self.undercover_count = max(game.undercover_count, 1)
                self.mr_white_count = game.mr_white_count
                self._transition(LifecycleState(LifecyclePhase.CONFIGURING))

        return await self._run("load the game", request, apply)

    # ---- configuring ------------------------------------------------------

    def set_role_counts(self, undercover_count: int, mr_white_count: int) -> bool:
        if not self._in(LifecyclePhase.CONFIGURING):
            return self._refuse("change role counts", "Roles can only be changed before the game starts")
        self.undercover_count = undercover_count
        self.mr_white_count = mr_white_count
        return True

    def validate_configuration(self) -> int:
        """Civilian count for the current settings; raises ValidationError"""
        mode = self.game.game_mode if self.game else GameMode.CLASSIC
        return validate_role_counts(len(self.players), self.undercover_count, self.mr_white_count, mode)

    @property
    def configuration_problem(self) -> Optional[str]:
        try:
            self.validate_configuration()
        except ValidationError as e:
            return e.message
        return None

    def begin_reorder(self) -> Optional[reorder.RosterReorder]:
        """Turn-order editor, only while configuring"""
        if not self._in(LifecyclePhase.CONFIGURING) or self.game is None:
            self._refuse("reorder players", "Players can only be reordered before the game starts")
            return None
        try:
            return reorder.for_game(self.sync, self.game)
        except UndercoverError as e:
            self.error = notice_for(e, "reorder players", logger)
            return None

    async def start(self) -> bool:
        """configuring -> roles_assigning -> revealing(0)"""
        action = "start the game"
        if not self._in(LifecyclePhase.CONFIGURING):
            return self._refuse(action, "The game is not being configured")
        if self.game is None:
            return self._refuse(action, "The game is not loaded")
        try:
            self.validate_configuration()
        except ValidationError as e:
            self.error = notice_for(e, action, logger)
            return False

        config = RoleConfig(undercover_count=self.undercover_count, mr_white_count=self.mr_white_count)

        async def request():
            await self.sync.configure_roles(self.game_id, config)
            await self.sync.start_game(self.game_id)

        def apply(_):
            self.gate.clear()
            self._transition(LifecycleState(LifecyclePhase.REVEALING, reveal_index=0))

        return await self._run(
            action, request, apply,
            pending=LifecycleState(LifecyclePhase.ROLES_ASSIGNING),
        )

    # ---- revealing --------------------------------------------------------

    @property
    def current_revealer(self) -> Optional[GamePlayer]:
        if not self._in(LifecyclePhase.REVEALING):
            return None
        players = self.players
        index = self._state.reveal_index
        return players[index] if index is not None and index < len(players) else None

    @property
    def revealed(self) -> Optional[RoleReveal]:
        return self.gate.revealed

    async def arm_reveal(self) -> bool:
        """First tap: fetch the current player's role and word, keep it hidden"""
        player = self.current_revealer
        if player is None:
            return self._refuse("reveal a role", "No player is waiting to see a role")
        index = self._state.reveal_index

        async def request():
            return await self.sync.reveal_role(self.game_id, player.player_id)

        def apply(secret: RoleReveal):
            if not self._in(LifecyclePhase.REVEALING) or self._state.reveal_index != index:
                logger.debug(f"Reveal for index {index} arrived after moving on, dropped")
                return False
            self.gate.arm(secret)

        return await self._run(f"reveal the role of {player.name}", request, apply, key=("reveal", index))

    def show_word(self) -> bool:
        """Second tap, local only"""
        if not self._in(LifecyclePhase.REVEALING):
            return self._refuse("show the word", "No role is being revealed")
        if not self.gate.show():
            return self._refuse("show the word", "Fetch the role first")
        return True

    async def advance_reveal(self) -> bool:
        """
        Hide the current secret and move to the next player, or into round 1
        after the last one.
        """
        action = "move to the next player"
        if not self._in(LifecyclePhase.REVEALING):
            return self._refuse(action, "No role is being revealed")
        self.gate.clear()
        index = self._state.reveal_index
        if index + 1 < len(self.players):
            self.error = None
            self._transition(LifecycleState(LifecyclePhase.REVEALING, reveal_index=index + 1))
            return True

        async def request():
            return await self.sync.current_round(self.game_id, force=True)

        def apply(current: Optional[Round]):
            self.descriptions = []
            self.votes = {}
            self._enter_round(current, RoundStage.DESCRIBING)

        return await self._run("begin round 1", request, apply, key="advance_reveal")

    # ---- rounds -----------------------------------------------------------

    def _enter_round(self, current: Optional[Round], stage: Optional[RoundStage] = None) -> None:
        self.current_round = current
        number = current.round_number if current else 1
        if stage is None:
            stage = _STAGE_FOR_STATUS[current.status] if current else RoundStage.DESCRIBING
        self._transition(LifecycleState(LifecyclePhase.ROUND, round_stage=stage, round_number=number))

    @property
    def current_speaker(self) -> Optional[GamePlayer]:
        """Starter of the current round, falling back to the first alive player"""
        if self.game and self.current_round and self.current_round.starter_id:
            starter = self.game.find(self.current_round.starter_id)
            if starter is not None:
                return starter
        alive = self.alive_players
        return alive[0] if alive else None

    @property
    def round_descriptions(self) -> List[Description]:
        return [d for d in self.descriptions if d.round_number == self._state.round_number]

    def record_description(self, text: str, speaker_id: Optional[str] = None) -> bool:
        """Keep a description locally; nothing is sent to the server"""
        action = "record the description"
        if not self._in(LifecyclePhase.ROUND, RoundStage.DESCRIBING):
            return self._refuse(action, "Descriptions are only taken while describing")
        text = (text or "").strip()
        if not text:
            return self._refuse(action, "Description cannot be empty")
        if speaker_id is None:
            speaker = self.current_speaker
            speaker_id = speaker.id if speaker else None
        self.descriptions.append(Description(self._state.round_number, speaker_id, text))
        self.error = None
        return True

    def begin_voting(self) -> bool:
        """describing -> voting, local"""
        if not self._in(LifecyclePhase.ROUND, RoundStage.DESCRIBING):
            return self._refuse("start voting", "Voting follows the describing stage")
        self.error = None
        self._transition(LifecycleState(
            LifecyclePhase.ROUND, round_stage=RoundStage.VOTING, round_number=self._state.round_number
        ))
        return True

    @property
    def pending_voters(self) -> List[GamePlayer]:
        return [gp for gp in self.alive_players if gp.id not in self.votes]

    async def submit_vote(self, voter_id: str, target_id: str) -> bool:
        """One vote per alive player; both ids are GamePlayer ids"""
        action = "submit the vote"
        if not self._in(LifecyclePhase.ROUND, RoundStage.VOTING):
            return self._refuse(action, "Votes are only taken during voting")
        voter = self.game.find(voter_id) if self.game else None
        target = self.game.find(target_id) if self.game else None
        if voter is None or not self.is_player_alive(voter):
            return self._refuse(action, "Only alive players can vote")
        if target is None or not self.is_player_alive(target):
            return self._refuse(action, "Votes can only go to alive players")
        if voter_id in self.votes:
            return self._refuse(action, f"{voter.name} has already voted this round")

        round_number = self._state.round_number

        async def request():
            return await self.sync.submit_vote(self.game_id, VoteCreate(voter_id=voter_id, voted_for_id=target_id))

        def apply(_):
            if not self._in(LifecyclePhase.ROUND, RoundStage.VOTING) or self._state.round_number != round_number:
                return False
            self.votes[voter_id] = target_id

        return await self._run(action, request, apply, key=("vote", voter_id))

    async def process_round(self) -> bool:
        """Let the server tally: voting -> resolved, -> finished when the game ended"""
        action = "process the round"
        if not self._in(LifecyclePhase.ROUND, RoundStage.VOTING):
            return self._refuse(action, "Only a round in voting can be processed")
        round_number = self._state.round_number

        async def request():
            return await self.sync.process_round(self.game_id)

        def apply(result):
            name = None
            if result.eliminated_player_id:
                self._eliminated.add(result.eliminated_player_id)
                eliminated = self.game.find(result.eliminated_player_id) if self.game else None
                name = eliminated.name if eliminated else None
            self.last_outcome = RoundOutcome(
                eliminated_player_id=result.eliminated_player_id,
                eliminated_name=name,
                role=result.eliminated_role,
                game_finished=result.game_finished,
                winner=result.winner,
            )
            self._transition(LifecycleState(
                LifecyclePhase.ROUND, round_stage=RoundStage.RESOLVED, round_number=round_number
            ))
            if result.game_finished:
                self._finish(result.winner)

        return await self._run(action, request, apply, key="process_round")

    async def next_round(self) -> bool:
        """resolved -> describing of the following round"""
        action = "start the next round"
        if not self._in(LifecyclePhase.ROUND, RoundStage.RESOLVED):
            return self._refuse(action, "The current round is not resolved yet")
        previous_number = self._state.round_number
        previous_starter = self.current_round.starter_id if self.current_round else None

        async def request():
            return await self.sync.next_round(self.game_id)

        def apply(new_round: Round):
            number = new_round.round_number
            if number <= previous_number:
                logger.warning(
                    f"Game {self.game_id}: server opened round {number} after round {previous_number}, "
                    f"numbering it {previous_number + 1}"
                )
                number = previous_number + 1
            starter_id = new_round.starter_id
            if not starter_id and self.game:
                starter = self.game.next_alive_after(previous_starter)
                starter_id = starter.id if starter else None
            self.current_round = new_round.model_copy(update={"round_number": number, "starter_id": starter_id})
            self.votes = {}
            self.last_outcome = None
            self._transition(LifecycleState(
                LifecyclePhase.ROUND, round_stage=RoundStage.DESCRIBING, round_number=number
            ))

        return await self._run(action, request, apply, key="next_round")

    async def eliminate(self, player_id: str) -> bool:
        """Host override from describing or voting; ``player_id`` is the Player id"""
        action = "eliminate the player"
        if not self._in(LifecyclePhase.ROUND, RoundStage.DESCRIBING, RoundStage.VOTING):
            return self._refuse(action, "Players can only be eliminated during a round")
        target = self.game.find_by_player_id(player_id) if self.game else None
        if target is None or not self.is_player_alive(target):
            return self._refuse(action, "Only alive players can be eliminated")
        round_number = self._state.round_number

        async def request():
            return await self.sync.eliminate_player(self.game_id, player_id)

        def apply(result):
            eliminated_id = result.eliminated_player_id or target.id
            self._eliminated.add(eliminated_id)
            self.last_outcome = RoundOutcome(
                eliminated_player_id=eliminated_id,
                eliminated_name=target.name,
                role=result.role,
                game_finished=result.game_finished,
                winner=result.winner,
                by_host=True,
            )
            if result.game_finished:
                self._finish(result.winner)
            else:
                self._transition(LifecycleState(
                    LifecyclePhase.ROUND, round_stage=RoundStage.RESOLVED, round_number=round_number
                ))

        return await self._run(f"eliminate {target.name}", request, apply, key="eliminate")

    async def refresh_round(self) -> bool:
        """
        Re-read the game and its current round. Does nothing outside a round;
        failures are logged and leave everything as it was. A game that has
        finished on the server moves the machine to finished.
        """
        if not self._in(LifecyclePhase.ROUND):
            return False
        try:
            game = await self.sync.game(self.game_id, force=True)
            current = None
            if not game.is_finished:
                current = await self.sync.current_round(self.game_id, force=True)
        except UndercoverError as e:
            logger.warning(f"Game {self.game_id}: round refresh failed ({e.kind}): {e}")
            return False
        if not self._alive:
            return False
        if game.is_finished:
            self._follow_finished(game)
            return True
        if current is None or not self._in(LifecyclePhase.ROUND):
            return False
        if current.round_number < self._state.round_number:
            return False
        if self.current_round and not current.starter_id:
            current = current.model_copy(update={"starter_id": self.current_round.starter_id})
        self.current_round = current
        return True

    # ---- finished ---------------------------------------------------------

    def _finish(self, winner: Optional[WinnerRole]) -> None:
        if winner is None and self.game is not None:
            winner = self.game.winner_role
        self.winner = winner
        self.gate.clear()
        self._transition(LifecycleState(LifecyclePhase.FINISHED, round_number=self._state.round_number))

    async def summary(self) -> Optional[GameSummary]:
        if self.game is None:
            return None
        try:
            return await self.setup.summarize(self.game)
        except UndercoverError as e:
            self.error = notice_for(e, "load the game history", logger)
            return None

    async def create_rematch(self) -> Optional["GameLifecycle"]:
        """
        New game in the same room with the same mode, counts and players,
        returned as a fresh machine at configuring.
        """
        action = "create a new game"
        if not self._in(LifecyclePhase.FINISHED) or self.game is None:
            self._refuse(action, "The game has not finished")
            return None
        finished = self.game
        created = {}

        async def request():
            return await self.setup.create_rematch(finished)

        def apply(result):
            created["result"] = result

        if not await self._run(action, request, apply, key="rematch"):
            return None

        result = created["result"]
        successor = GameLifecycle(self.sync, result.game.id, setup=self.setup)
        await successor.load()
        successor.undercover_count = finished.undercover_count
        successor.mr_white_count = finished.mr_white_count
        if result.transfer_error is not None:
            successor.error = result.transfer_error
        return successor
