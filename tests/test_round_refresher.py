"""
Round refresher tests
回合定时刷新测试
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from undercover_client.services.round_refresher import RoundRefresher


def fake_lifecycle():
    lifecycle = MagicMock()
    lifecycle.game_id = "g1"
    lifecycle.is_alive = True
    lifecycle.refresh_round = AsyncMock(return_value=True)
    return lifecycle


class TestRoundRefresher:
    """测试后台刷新任务"""

    async def test_refreshes_until_stopped(self):
        lifecycle = fake_lifecycle()
        refresher = RoundRefresher(lifecycle, interval=0.01)

        await refresher.start()
        await asyncio.sleep(0.05)
        await refresher.stop()

        assert lifecycle.refresh_round.await_count >= 2
        assert refresher.is_running is False
        assert refresher.task.done()

    async def test_start_twice_keeps_one_task(self):
        refresher = RoundRefresher(fake_lifecycle(), interval=0.01)
        await refresher.start()
        task = refresher.task
        await refresher.start()
        assert refresher.task is task
        await refresher.stop()

    async def test_stops_when_lifecycle_closed(self):
        lifecycle = fake_lifecycle()
        refresher = RoundRefresher(lifecycle, interval=0.01)
        await refresher.start()
        lifecycle.is_alive = False
        await asyncio.sleep(0.05)

        assert refresher.task.done()
        assert refresher.is_running is False
