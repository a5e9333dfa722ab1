"""
Roster reorder workflow tests
玩家顺序调整测试
"""

import asyncio
from dataclasses import dataclass
from typing import List

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from undercover_client.core.exceptions import ConflictError, NetworkError
from undercover_client.services import reorder
from undercover_client.services.reorder import ReorderState, RosterReorder

from conftest import PLAYER_NAMES, create_game


@dataclass
class Entry:
    id: str
    turn_order: int


def entries(count: int) -> List[Entry]:
    return [Entry(id=f"gp{i}", turn_order=i) for i in range(count)]


class Recorder:
    """Commit function that records what it was sent"""

    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def __call__(self, ids):
        self.sent.append(list(ids))
        if self.error is not None:
            raise self.error


class TestDraftEditing:
    """测试本地草稿编辑"""

    @given(
        size=st.integers(min_value=0, max_value=8),
        moves=st.lists(st.tuples(st.integers(-2, 10), st.integers(-2, 10)), max_size=20),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_draft_stays_a_permutation(self, size, moves):
        """
        任意移动序列后，草稿仍是原列表的一个排列，原列表不变
        """
        source = entries(size)
        snapshot = [(e.id, e.turn_order) for e in source]
        editor = RosterReorder(Recorder())
        editor.begin_edit(source)

        for from_index, to_index in moves:
            before = editor.draft_ids
            moved = editor.move(from_index, to_index)
            in_range = 0 <= from_index < size and 0 <= to_index < size
            assert moved is in_range
            if not in_range:
                assert editor.draft_ids == before

        assert sorted(editor.draft_ids) == sorted(e.id for e in source)
        assert [(e.id, e.turn_order) for e in source] == snapshot

    def test_begin_edit_sorts_by_turn_order(self):
        source = [Entry("c", 2), Entry("a", 0), Entry("b", 1)]
        editor = RosterReorder(Recorder())
        editor.begin_edit(source)
        assert editor.draft_ids == ["a", "b", "c"]

    def test_draft_is_independent_copy(self):
        source = entries(3)
        editor = RosterReorder(Recorder())
        editor.begin_edit(source)
        editor.draft[0].id = "mutated"
        assert source[0].id == "gp0"

    def test_move_up_and_down(self):
        editor = RosterReorder(Recorder())
        editor.begin_edit(entries(3))
        assert editor.move_down(0)
        assert editor.draft_ids == ["gp1", "gp0", "gp2"]
        assert editor.move_up(2)
        assert editor.draft_ids == ["gp1", "gp2", "gp0"]
        assert not editor.move_up(0)
        assert not editor.move_down(2)

    def test_move_while_idle_is_noop(self):
        editor = RosterReorder(Recorder())
        assert editor.move(0, 1) is False
        assert editor.state == ReorderState.IDLE


class TestCommit:
    """测试提交"""

    async def test_cancel_sends_nothing(self):
        commit = Recorder()
        editor = RosterReorder(commit)
        editor.begin_edit(entries(3))
        editor.move(0, 2)
        editor.cancel()

        assert editor.state == ReorderState.IDLE
        assert editor.draft == []
        assert commit.sent == []

    async def test_commit_sends_draft_ids(self):
        commit = Recorder()
        editor = RosterReorder(commit)
        editor.begin_edit(entries(3))
        editor.move(2, 0)

        assert await editor.commit()
        assert commit.sent == [["gp2", "gp0", "gp1"]]
        assert editor.state == ReorderState.IDLE

    async def test_failed_commit_keeps_draft(self):
        """提交失败时保留草稿并停留在编辑状态"""
        commit = Recorder(error=NetworkError("offline"))
        editor = RosterReorder(commit)
        editor.begin_edit(entries(3))
        editor.move(0, 1)

        assert not await editor.commit()
        assert editor.is_editing
        assert editor.draft_ids == ["gp1", "gp0", "gp2"]
        assert editor.error.kind == "network"

    async def test_commit_while_idle(self):
        editor = RosterReorder(Recorder())
        assert not await editor.commit()
        assert editor.error.kind == "validation"

    async def test_second_commit_is_busy(self):
        release = asyncio.Event()

        async def slow_commit(ids):
            await release.wait()

        editor = RosterReorder(slow_commit)
        editor.begin_edit(entries(2))
        first = asyncio.create_task(editor.commit())
        await asyncio.sleep(0)

        assert not await editor.commit()
        assert editor.error.kind == "busy"

        release.set()
        assert await first


class TestServerReorder:
    """测试与服务器交互的顺序调整"""

    async def test_game_turn_order_saved(self, seeded):
        sync = seeded.sync
        game = await create_game(sync, seeded.room.id)
        editor = reorder.for_game(sync, game)
        editor.move(3, 0)

        assert await editor.commit()
        refreshed = await sync.game(game.id)
        assert [gp.name for gp in refreshed.ordered_players] == ["Dave", "Alice", "Bob", "Carol"]
        # the snapshot the editor started from is untouched
        assert [gp.name for gp in game.ordered_players] == PLAYER_NAMES

    async def test_started_game_cannot_be_reordered(self, seeded):
        sync = seeded.sync
        game = await create_game(sync, seeded.room.id)
        await sync.start_game(game.id)
        started = await sync.game(game.id)

        with pytest.raises(ConflictError):
            reorder.for_game(sync, started)

    async def test_group_order_saved(self, seeded):
        sync = seeded.sync
        editor = reorder.for_group(sync, seeded.group)
        editor.move(0, 3)

        assert await editor.commit()
        group = await sync.group(seeded.group.id)
        assert [p.name for p in group.players] == ["Bob", "Carol", "Dave", "Alice"]
