"""
Round refresher
回合定时刷新 - 回合阶段定期从服务器同步当前回合
"""

import asyncio
import logging
from typing import Optional

from undercover_client.core.config import settings

logger = logging.getLogger(__name__)


class RoundRefresher:
    """Periodically calls ``refresh_round`` on a lifecycle while it is alive"""

    def __init__(self, lifecycle, interval: Optional[float] = None):
        self.lifecycle = lifecycle
        self.interval = settings.ROUND_REFRESH_INTERVAL if interval is None else interval
        self.is_running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        if self.is_running:
            logger.warning("Round refresher already running")
            return
        self.is_running = True
        self.task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Round refresher started for game {self.lifecycle.game_id}, every {self.interval}s")

    async def stop(self):
        if not self.is_running:
            return
        self.is_running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info(f"Round refresher stopped for game {self.lifecycle.game_id}")

    async def _refresh_loop(self):
        while self.is_running and self.lifecycle.is_alive:
            await self.lifecycle.refresh_round()
            await asyncio.sleep(self.interval)
        self.is_running = False
