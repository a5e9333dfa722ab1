"""
Development server application
开发服务器 - 内存实现的 Undercover API，用于本地联调和测试
"""

import logging
import random
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from undercover_client import __version__
from undercover_client.core.config import settings
from undercover_client.devserver.api import api_router
from undercover_client.devserver.engine import GameEngine
from undercover_client.devserver.store import MemoryStore

logger = logging.getLogger(__name__)


def create_app(store: Optional[MemoryStore] = None, rng: Optional[random.Random] = None) -> FastAPI:
    """Build an app with its own store; tests pass a seeded ``rng``"""
    app = FastAPI(
        title="谁是卧底 (dev)",
        description="In-memory Undercover API for local development",
        version=__version__,
        # 禁用尾部斜杠重定向，避免 307 Redirect 导致 Authorization header 丢失
        redirect_slashes=False,
    )
    app.state.store = store or MemoryStore()
    app.state.engine = GameEngine(app.state.store, rng=rng)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "environment": settings.ENVIRONMENT}

    logger.debug(f"Development API mounted at {settings.API_PREFIX}")
    return app


app = create_app()
