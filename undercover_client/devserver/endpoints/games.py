"""
Game API endpoints
游戏API端点
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from undercover_client.devserver.auth import get_current_user, get_store
from undercover_client.devserver.endpoints.rooms import load_room
from undercover_client.devserver.engine import (
    GameEngine, game_player_view, game_view, round_view, vote_view
)
from undercover_client.devserver.store import GameRecord, MemoryStore, UserRecord
from undercover_client.schemas import (
    EliminationResult, Game, GameCreate, GameHistory, GamePlayer,
    GamePlayerCreate, MessageResponse, ReorderRequest, RoleConfig, RoleReveal,
    Round, RoundResult, Vote, VoteCreate
)

router = APIRouter()


def get_engine(request: Request) -> GameEngine:
    return request.app.state.engine


def load_game(store: MemoryStore, game_id: str, user: UserRecord) -> GameRecord:
    game = store.games.get(game_id)
    if game is None or game.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    return game


@router.post("/rooms/{room_id}/games", response_model=Game, status_code=status.HTTP_201_CREATED)
async def create_game(
    room_id: str,
    data: GameCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    """在房间内创建游戏 - 玩家由客户端逐个加入"""
    room = load_room(store, room_id, current_user)
    return game_view(engine.create_game(room, current_user.id, data))


@router.get("/{game_id}", response_model=Game)
async def get_game(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    return game_view(load_game(store, game_id, current_user))


@router.put("/{game_id}/roles", response_model=Game)
async def configure_roles(
    game_id: str,
    config: RoleConfig,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    game = load_game(store, game_id, current_user)
    return game_view(engine.configure_roles(game, config))


@router.post("/{game_id}/start", response_model=MessageResponse)
async def start_game(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    """开始游戏 - 分配角色和词汇，开启第一回合"""
    engine.start_game(load_game(store, game_id, current_user))
    return MessageResponse(message="Game started")


@router.put("/{game_id}/players/reorder", response_model=MessageResponse)
async def reorder_players(
    game_id: str,
    data: ReorderRequest,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    engine.reorder(load_game(store, game_id, current_user), data.player_order)
    return MessageResponse(message="Turn order updated")


@router.post("/{game_id}/players", response_model=GamePlayer, status_code=status.HTTP_201_CREATED)
async def add_player(
    game_id: str,
    data: GamePlayerCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    game = load_game(store, game_id, current_user)
    return game_player_view(game, engine.add_player(game, data.name, data.avatar))


@router.get("/{game_id}/players/{player_id}/role", response_model=RoleReveal)
async def reveal_role(
    game_id: str,
    player_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    return engine.reveal(load_game(store, game_id, current_user), player_id)


@router.post("/{game_id}/players/{player_id}/eliminate", response_model=EliminationResult)
async def eliminate_player(
    game_id: str,
    player_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    """主持人淘汰玩家"""
    return engine.eliminate_player(load_game(store, game_id, current_user), player_id)


@router.get("/{game_id}/round", response_model=Optional[Round])
async def current_round(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    game = load_game(store, game_id, current_user)
    return round_view(game.current_round) if game.current_round else None


@router.get("/{game_id}/votes", response_model=List[Vote])
async def list_votes(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    game = load_game(store, game_id, current_user)
    return [vote_view(v) for v in game.current_round.votes] if game.current_round else []


@router.put("/{game_id}/votes", response_model=Vote)
async def submit_vote(
    game_id: str,
    vote: VoteCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    game = load_game(store, game_id, current_user)
    return vote_view(engine.submit_vote(game, vote.voter_id, vote.voted_for_id))


@router.post("/{game_id}/round/process", response_model=RoundResult)
async def process_round(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    """统计投票并淘汰得票最多的玩家"""
    return engine.process_round(load_game(store, game_id, current_user))


@router.post("/{game_id}/round/next", response_model=Round)
async def next_round(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    return round_view(engine.next_round(load_game(store, game_id, current_user)))


@router.get("/{game_id}/history", response_model=GameHistory)
async def history(
    game_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store),
    engine: GameEngine = Depends(get_engine)
):
    return engine.history(load_game(store, game_id, current_user))
