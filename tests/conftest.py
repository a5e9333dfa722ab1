"""
Pytest configuration and fixtures
测试配置和固件
"""

import random
from dataclasses import dataclass
from typing import Dict, List

import httpx
import pytest

from undercover_client.devserver.app import create_app
from undercover_client.schemas import (
    Game, GameCreate, GameMode, GamePlayerCreate, Group, GroupCreate,
    PlayerInput, PlayerRole, RegisterData, Room, RoomCreate
)
from undercover_client.services.api_client import UndercoverApiClient
from undercover_client.services.cache import EntityCache
from undercover_client.services.sync import ResourceSync
from undercover_client.utils.session import SessionStore

BASE_URL = "http://test/api/v1"
PLAYER_NAMES = ["Alice", "Bob", "Carol", "Dave"]


@dataclass
class Seed:
    """Logged-in host with one group and a room over it"""
    sync: ResourceSync
    group: Group
    room: Room


@pytest.fixture
def dev_app():
    """In-memory API with a fixed random seed"""
    return create_app(rng=random.Random(20240601))


@pytest.fixture
def session():
    """Memory-only credential store"""
    return SessionStore()


@pytest.fixture
async def api(dev_app, session):
    client = UndercoverApiClient(session, base_url=BASE_URL, transport=httpx.ASGITransport(app=dev_app))
    yield client
    await client.aclose()


@pytest.fixture
def sync(api):
    return ResourceSync(api, EntityCache(stale_after=300))


@pytest.fixture
async def logged_in(sync):
    await sync.register(RegisterData(email="host@example.com", password="secret123", username="host"))
    return sync


@pytest.fixture
async def seeded(logged_in) -> Seed:
    group = await logged_in.create_group(GroupCreate(
        name="Friday night",
        players=[PlayerInput(name=name) for name in PLAYER_NAMES],
    ))
    room = await logged_in.create_room(RoomCreate(name="Living room", group_id=group.id))
    return Seed(sync=logged_in, group=group, room=room)


async def create_game(
    sync: ResourceSync,
    room_id: str,
    names: List[str] = PLAYER_NAMES,
    mode: GameMode = GameMode.CLASSIC,
    undercover_count: int = 1,
    mr_white_count: int = 0,
) -> Game:
    """Create a waiting game and add ``names`` in order"""
    game = await sync.create_game(
        room_id,
        GameCreate(game_mode=mode, undercover_count=undercover_count, mr_white_count=mr_white_count),
    )
    await sync.add_players_to_game(game.id, [GamePlayerCreate(name=name) for name in names])
    return await sync.game(game.id, force=True)


def roles_of(dev_app, game_id: str) -> Dict[str, PlayerRole]:
    """Server-side roles by GamePlayer id"""
    game = dev_app.state.store.games[game_id]
    return {gp.id: gp.role for gp in game.players}
