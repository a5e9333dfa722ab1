"""
Roster reorder workflow
玩家顺序调整 - 本地草稿，保存时提交
"""

import copy
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from undercover_client.core.exceptions import BusyError, ConflictError, UndercoverError, ValidationError
from undercover_client.schemas import Game, Group
from undercover_client.services.notices import ErrorNotice, notice_for

logger = logging.getLogger(__name__)

CommitFn = Callable[[List[str]], Awaitable[Any]]


class ReorderState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"


class RosterReorder:
    """
    Two-state draft/committed editing of an ordered player list.

    The draft is an independent copy; nothing touches the committed list
    until ``commit()`` succeeds, and only the draft's id sequence is sent.
    The canonical order comes back through cache invalidation.
    """

    def __init__(self, commit: CommitFn, name: str = "roster"):
        self._commit = commit
        self.name = name
        self.state = ReorderState.IDLE
        self._draft: List[Any] = []
        self.error: Optional[ErrorNotice] = None
        self.committing = False

    @property
    def draft(self) -> List[Any]:
        """Copy of the current draft; empty while idle"""
        return list(self._draft)

    @property
    def draft_ids(self) -> List[str]:
        return [item.id for item in self._draft]

    @property
    def is_editing(self) -> bool:
        return self.state == ReorderState.EDITING

    def begin_edit(self, source: Sequence[Any]) -> None:
        """idle -> editing with a deep copy of ``source``"""
        items = list(source)
        if items and all(hasattr(item, "turn_order") for item in items):
            items.sort(key=lambda item: item.turn_order)
        self._draft = copy.deepcopy(items)
        self.state = ReorderState.EDITING
        self.error = None
        logger.debug(f"{self.name}: editing {len(self._draft)} entries")

    def move(self, from_index: int, to_index: int) -> bool:
        """
        Move the entry at ``from_index`` to ``to_index``. Out-of-range
        indices, or moving while idle, change nothing and return False.
        """
        if not self.is_editing:
            return False
        size = len(self._draft)
        if not (0 <= from_index < size and 0 <= to_index < size):
            return False
        item = self._draft.pop(from_index)
        self._draft.insert(to_index, item)
        return True

    def move_up(self, index: int) -> bool:
        return self.move(index, index - 1)

    def move_down(self, index: int) -> bool:
        return self.move(index, index + 1)

    async def commit(self) -> bool:
        """
        editing -> idle once the server accepted the new order. On failure
        the draft stays as it was and ``error`` says why.
        """
        if not self.is_editing:
            self.error = notice_for(ValidationError("Nothing is being edited"), f"save {self.name} order", logger)
            return False
        if self.committing:
            self.error = notice_for(BusyError("Order is already being saved"), f"save {self.name} order", logger)
            return False

        ids = self.draft_ids
        self.committing = True
        try:
            await self._commit(ids)
        except UndercoverError as e:
            self.error = notice_for(e, f"save {self.name} order", logger)
            return False
        finally:
            self.committing = False

        logger.info(f"{self.name}: saved order of {len(ids)} entries")
        self._draft = []
        self.state = ReorderState.IDLE
        self.error = None
        return True

    def cancel(self) -> None:
        """editing -> idle, draft discarded, nothing sent"""
        self._draft = []
        self.state = ReorderState.IDLE
        self.error = None


def for_game(sync, game: Game) -> RosterReorder:
    """Turn-order editor for a game that has not started yet"""
    if not game.is_waiting:
        raise ConflictError("Turn order can only be changed before the game starts")

    async def commit(ids: List[str]) -> None:
        await sync.reorder_game_players(game.id, ids)

    reorder = RosterReorder(commit, name="turn")
    reorder.begin_edit(game.ordered_players)
    return reorder


def for_group(sync, group: Group) -> RosterReorder:
    """Player-order editor for a group"""

    async def commit(ids: List[str]) -> None:
        await sync.reorder_group_players(group.id, ids)

    reorder = RosterReorder(commit, name="group")
    reorder.begin_edit(group.players)
    return reorder
