"""
Game lifecycle state machine tests
游戏流程状态机测试
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from undercover_client.core.exceptions import NetworkError, ValidationError
from undercover_client.schemas import GameMode, PlayerRole, Round, WinnerRole
from undercover_client.services.lifecycle import (
    GameLifecycle, LifecyclePhase, LifecycleState, RoundStage, validate_role_counts
)

from conftest import PLAYER_NAMES, create_game, roles_of


async def started_lifecycle(sync, room_id, names=PLAYER_NAMES, **kwargs) -> GameLifecycle:
    game = await create_game(sync, room_id, names, **kwargs)
    lifecycle = GameLifecycle(sync, game.id)
    assert await lifecycle.load()
    assert await lifecycle.start()
    return lifecycle


async def reveal_everyone(lifecycle: GameLifecycle) -> None:
    while lifecycle.phase == LifecyclePhase.REVEALING:
        assert await lifecycle.arm_reveal()
        assert lifecycle.show_word()
        assert await lifecycle.advance_reveal()


def split_roles(dev_app, lifecycle):
    roles = roles_of(dev_app, lifecycle.game_id)
    impostors = [gp for gp in lifecycle.players if roles[gp.id] != PlayerRole.CIVILIAN]
    civilians = [gp for gp in lifecycle.players if roles[gp.id] == PlayerRole.CIVILIAN]
    return impostors, civilians


class TestRoleCountValidation:
    """测试角色数量校验"""

    @pytest.mark.parametrize("players, undercover, mr_white, mode, message", [
        (2, 1, 0, GameMode.CLASSIC, "At least 3 players"),
        (4, 0, 0, GameMode.CLASSIC, "At least one undercover"),
        (4, 2, 0, GameMode.CLASSIC, "fewer than half"),
        (6, 1, 2, GameMode.EXTENDED, "must be 0 or 1"),
        (5, 1, 1, GameMode.CLASSIC, "only available in extended"),
    ])
    def test_violations_name_the_constraint(self, players, undercover, mr_white, mode, message):
        with pytest.raises(ValidationError, match=message):
            validate_role_counts(players, undercover, mr_white, mode)

    @pytest.mark.parametrize("players, undercover, mr_white, mode, civilians", [
        (3, 1, 0, GameMode.CLASSIC, 2),
        (4, 1, 0, GameMode.CLASSIC, 3),
        (5, 2, 0, GameMode.CLASSIC, 3),
        (5, 1, 1, GameMode.EXTENDED, 3),
        (8, 3, 1, GameMode.EXTENDED, 4),
    ])
    def test_valid_configurations(self, players, undercover, mr_white, mode, civilians):
        assert validate_role_counts(players, undercover, mr_white, mode) == civilians


class TestConfiguring:
    """测试配置阶段"""

    async def test_load_waiting_game(self, seeded):
        game = await create_game(seeded.sync, seeded.room.id)
        lifecycle = GameLifecycle(seeded.sync, game.id)

        assert await lifecycle.load()
        assert lifecycle.state == LifecycleState(LifecyclePhase.CONFIGURING)
        assert lifecycle.undercover_count == 1
        assert [gp.name for gp in lifecycle.players] == PLAYER_NAMES

    async def test_invalid_counts_block_start_without_request(self, seeded):
        game = await create_game(seeded.sync, seeded.room.id)
        lifecycle = GameLifecycle(seeded.sync, game.id)
        await lifecycle.load()
        seeded.sync.configure_roles = AsyncMock()

        lifecycle.set_role_counts(2, 0)
        assert not await lifecycle.start()

        assert lifecycle.phase == LifecyclePhase.CONFIGURING
        assert lifecycle.error.kind == "validation"
        assert "fewer than half" in lifecycle.error.message
        seeded.sync.configure_roles.assert_not_awaited()

    async def test_too_few_players(self, seeded):
        game = await create_game(seeded.sync, seeded.room.id, names=["Alice", "Bob"])
        lifecycle = GameLifecycle(seeded.sync, game.id)
        await lifecycle.load()

        assert lifecycle.configuration_problem.startswith("At least 3 players")
        assert not await lifecycle.start()

    async def test_start_failure_returns_to_configuring(self, seeded):
        """开始失败时回到配置阶段并保留错误"""
        game = await create_game(seeded.sync, seeded.room.id)
        lifecycle = GameLifecycle(seeded.sync, game.id)
        await lifecycle.load()
        seeded.sync.start_game = AsyncMock(side_effect=NetworkError("offline"))

        assert not await lifecycle.start()
        assert lifecycle.state == LifecycleState(LifecyclePhase.CONFIGURING)
        assert lifecycle.error.kind == "network"

    async def test_reorder_only_while_configuring(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        assert lifecycle.begin_reorder() is None
        assert lifecycle.error.kind == "validation"


class TestRevealing:
    """测试身份查看"""

    async def test_start_enters_first_reveal(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        assert lifecycle.state == LifecycleState(LifecyclePhase.REVEALING, reveal_index=0)
        assert lifecycle.current_revealer.name == "Alice"

    async def test_secret_hidden_until_second_tap(self, seeded, dev_app):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        assert await lifecycle.arm_reveal()
        assert lifecycle.revealed is None

        assert lifecycle.show_word()
        roles = roles_of(dev_app, lifecycle.game_id)
        assert lifecycle.revealed.role == roles[lifecycle.current_revealer.id]

    async def test_show_before_fetch_refused(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        assert not lifecycle.show_word()
        assert lifecycle.revealed is None

    async def test_advance_clears_secret(self, seeded):
        """前进后上一位玩家的词汇立即清除"""
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await lifecycle.arm_reveal()
        lifecycle.show_word()

        assert await lifecycle.advance_reveal()
        assert lifecycle.state.reveal_index == 1
        assert lifecycle.revealed is None
        assert not lifecycle.gate.armed

    async def test_failed_round_load_keeps_last_index(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        for _ in range(len(PLAYER_NAMES) - 1):
            await lifecycle.advance_reveal()
        await lifecycle.arm_reveal()
        lifecycle.show_word()
        seeded.sync.current_round = AsyncMock(side_effect=NetworkError("offline"))

        assert not await lifecycle.advance_reveal()
        assert lifecycle.state == LifecycleState(LifecyclePhase.REVEALING, reveal_index=3)
        assert lifecycle.revealed is None
        assert lifecycle.error.kind == "network"

    async def test_duplicate_fetch_is_busy(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        release = asyncio.Event()
        real_reveal = seeded.sync.reveal_role

        async def slow_reveal(game_id, player_id):
            await release.wait()
            return await real_reveal(game_id, player_id)

        seeded.sync.reveal_role = slow_reveal
        first = asyncio.create_task(lifecycle.arm_reveal())
        await asyncio.sleep(0)

        assert not await lifecycle.arm_reveal()
        assert lifecycle.error.kind == "busy"

        release.set()
        assert await first
        assert lifecycle.gate.armed

    async def test_late_response_after_close_is_dropped(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        release = asyncio.Event()
        real_reveal = seeded.sync.reveal_role

        async def slow_reveal(game_id, player_id):
            await release.wait()
            return await real_reveal(game_id, player_id)

        seeded.sync.reveal_role = slow_reveal
        pending = asyncio.create_task(lifecycle.arm_reveal())
        await asyncio.sleep(0)
        lifecycle.close()
        release.set()

        assert not await pending
        assert not lifecycle.gate.armed
        assert lifecycle.error is None

    async def test_last_advance_opens_round_one(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)

        assert lifecycle.state == LifecycleState(
            LifecyclePhase.ROUND, round_stage=RoundStage.DESCRIBING, round_number=1
        )
        assert lifecycle.current_speaker.name == "Alice"


class TestRounds:
    """测试回合流程"""

    async def test_four_player_game_civilians_win(self, seeded, dev_app):
        """
        四人局：所有人投给卧底，平民获胜
        """
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, civilians = split_roles(dev_app, lifecycle)
        undercover = impostors[0]

        for gp in lifecycle.alive_players:
            assert lifecycle.record_description(f"{gp.name} says something", speaker_id=gp.id)
        assert len(lifecycle.round_descriptions) == 4
        assert lifecycle.begin_voting()

        for voter in civilians:
            assert await lifecycle.submit_vote(voter.id, undercover.id)
        assert await lifecycle.submit_vote(undercover.id, civilians[0].id)
        assert lifecycle.pending_voters == []

        assert await lifecycle.process_round()
        assert lifecycle.phase == LifecyclePhase.FINISHED
        assert lifecycle.winner == WinnerRole.CIVILIANS
        assert lifecycle.last_outcome.eliminated_player_id == undercover.id
        assert lifecycle.last_outcome.role == PlayerRole.UNDERCOVER

        summary = await lifecycle.summary()
        assert summary.winner == WinnerRole.CIVILIANS
        assert summary.total_rounds == 1
        assert {gp.role for gp in summary.players} == {PlayerRole.CIVILIAN, PlayerRole.UNDERCOVER}

    async def test_rounds_continue_until_undercover_wins(self, seeded, dev_app):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, civilians = split_roles(dev_app, lifecycle)
        first_starter = lifecycle.current_round.starter_id

        # round 1: everybody votes out a civilian
        target = civilians[0]
        lifecycle.begin_voting()
        for voter in lifecycle.alive_players:
            other = target if voter.id != target.id else impostors[0]
            assert await lifecycle.submit_vote(voter.id, other.id)
        assert await lifecycle.process_round()
        assert lifecycle.state.round_stage == RoundStage.RESOLVED
        assert lifecycle.last_outcome.eliminated_player_id == target.id

        assert await lifecycle.next_round()
        assert lifecycle.state == LifecycleState(
            LifecyclePhase.ROUND, round_stage=RoundStage.DESCRIBING, round_number=2
        )
        expected_starter = lifecycle.game.next_alive_after(first_starter)
        assert lifecycle.current_round.starter_id == expected_starter.id
        assert lifecycle.votes == {}

        # round 2: the host removes another civilian, two players are left
        assert await lifecycle.eliminate(civilians[1].player_id)
        assert lifecycle.phase == LifecyclePhase.FINISHED
        assert lifecycle.winner == WinnerRole.UNDERCOVER
        assert lifecycle.last_outcome.by_host

    async def test_eliminated_player_stays_out(self, seeded, dev_app):
        """被淘汰的玩家不能再投票或被投票"""
        names = PLAYER_NAMES + ["Eve", "Frank"]
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id, names=names)
        await reveal_everyone(lifecycle)
        impostors, civilians = split_roles(dev_app, lifecycle)
        out = civilians[0]

        assert await lifecycle.eliminate(out.player_id)
        assert lifecycle.state.round_stage == RoundStage.RESOLVED
        assert out not in lifecycle.alive_players
        assert not await lifecycle.eliminate(out.player_id)

        assert await lifecycle.next_round()
        lifecycle.begin_voting()
        assert not await lifecycle.submit_vote(out.id, impostors[0].id)
        assert "alive" in lifecycle.error.message
        assert not await lifecycle.submit_vote(civilians[1].id, out.id)

    async def test_one_vote_per_player(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        lifecycle.begin_voting()
        alice, bob = lifecycle.players[0], lifecycle.players[1]

        assert await lifecycle.submit_vote(alice.id, bob.id)
        assert not await lifecycle.submit_vote(alice.id, bob.id)
        assert "already voted" in lifecycle.error.message

    async def test_votes_only_while_voting(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        alice, bob = lifecycle.players[0], lifecycle.players[1]

        assert not await lifecycle.submit_vote(alice.id, bob.id)
        assert not await lifecycle.process_round()
        assert not await lifecycle.next_round()
        assert lifecycle.round_stage == RoundStage.DESCRIBING

    async def test_empty_description_refused(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        assert not lifecycle.record_description("   ")
        assert lifecycle.descriptions == []

    async def test_round_number_never_goes_back(self, seeded, dev_app):
        """服务器返回旧回合号时，回合号仍然递增"""
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, civilians = split_roles(dev_app, lifecycle)
        target = civilians[0]
        lifecycle.begin_voting()
        for voter in lifecycle.alive_players:
            other = target if voter.id != target.id else impostors[0]
            assert await lifecycle.submit_vote(voter.id, other.id)
        assert await lifecycle.process_round()
        assert lifecycle.round_stage == RoundStage.RESOLVED

        seeded.sync.next_round = AsyncMock(return_value=Round(id="stale", round_number=1))
        assert await lifecycle.next_round()
        assert lifecycle.round_number == 2
        assert lifecycle.current_round.round_number == 2
        assert lifecycle.current_round.starter_id is not None

    async def test_failed_process_keeps_voting(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        lifecycle.begin_voting()
        before = lifecycle.state
        seeded.sync.process_round = AsyncMock(side_effect=NetworkError("offline"))

        assert not await lifecycle.process_round()
        assert lifecycle.state == before
        assert lifecycle.error.kind == "network"

    async def test_refresh_outside_round_is_noop(self, seeded):
        game = await create_game(seeded.sync, seeded.room.id)
        lifecycle = GameLifecycle(seeded.sync, game.id)
        await lifecycle.load()
        seeded.sync.current_round = AsyncMock()

        assert not await lifecycle.refresh_round()
        seeded.sync.current_round.assert_not_awaited()

    async def test_refresh_failure_changes_nothing(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        before = (lifecycle.state, lifecycle.current_round)
        seeded.sync.current_round = AsyncMock(side_effect=NetworkError("offline"))

        assert not await lifecycle.refresh_round()
        assert (lifecycle.state, lifecycle.current_round) == before

    async def test_game_ended_elsewhere_finishes_machine(self, seeded, dev_app):
        """游戏在别处结束后，状态机跟随进入结束阶段"""
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, _ = split_roles(dev_app, lifecycle)

        await seeded.sync.eliminate_player(lifecycle.game_id, impostors[0].player_id)

        assert lifecycle.phase == LifecyclePhase.FINISHED
        assert lifecycle.winner == WinnerRole.CIVILIANS

    async def test_refresh_notices_finished_game(self, seeded, dev_app):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, _ = split_roles(dev_app, lifecycle)

        # straight through the client, so the cache is not told
        await seeded.sync.api.eliminate_player(lifecycle.game_id, impostors[0].player_id)
        assert lifecycle.phase == LifecyclePhase.ROUND

        assert await lifecycle.refresh_round()
        assert lifecycle.phase == LifecyclePhase.FINISHED
        assert lifecycle.winner == WinnerRole.CIVILIANS
        assert not await lifecycle.eliminate(impostors[0].player_id)


class TestResume:
    """测试从服务器状态恢复"""

    async def test_load_active_game_resumes_round(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        resumed = GameLifecycle(seeded.sync, lifecycle.game_id)

        assert await resumed.load()
        assert resumed.state == LifecycleState(
            LifecyclePhase.ROUND, round_stage=RoundStage.DESCRIBING, round_number=1
        )

    async def test_load_finished_game(self, seeded, dev_app):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        await reveal_everyone(lifecycle)
        impostors, _ = split_roles(dev_app, lifecycle)
        await lifecycle.eliminate(impostors[0].player_id)

        resumed = GameLifecycle(seeded.sync, lifecycle.game_id)
        assert await resumed.load()
        assert resumed.phase == LifecyclePhase.FINISHED
        assert resumed.winner == WinnerRole.CIVILIANS


class TestRematch:
    """测试再来一局"""

    async def test_rematch_keeps_settings_and_roster(self, seeded, dev_app):
        names = PLAYER_NAMES + ["Eve"]
        lifecycle = await started_lifecycle(
            seeded.sync, seeded.room.id, names=names, mode=GameMode.EXTENDED, mr_white_count=1
        )
        await reveal_everyone(lifecycle)
        impostors, _ = split_roles(dev_app, lifecycle)
        for gp in impostors:
            if lifecycle.phase != LifecyclePhase.FINISHED:
                await lifecycle.eliminate(gp.player_id)
                if lifecycle.phase == LifecyclePhase.ROUND:
                    await lifecycle.next_round()
        assert lifecycle.phase == LifecyclePhase.FINISHED

        successor = await lifecycle.create_rematch()

        assert successor is not None
        assert successor.game_id != lifecycle.game_id
        assert successor.phase == LifecyclePhase.CONFIGURING
        assert successor.game.room_id == seeded.room.id
        assert successor.game.game_mode == GameMode.EXTENDED
        assert (successor.undercover_count, successor.mr_white_count) == (1, 1)
        assert [gp.name for gp in successor.players] == names
        assert successor.error is None

    async def test_rematch_only_when_finished(self, seeded):
        lifecycle = await started_lifecycle(seeded.sync, seeded.room.id)
        assert await lifecycle.create_rematch() is None
        assert lifecycle.error.kind == "validation"
