"""
Room management API endpoints
房间管理API端点
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from undercover_client.devserver.auth import get_current_user, get_store
from undercover_client.devserver.endpoints.groups import group_view, load_group
from undercover_client.devserver.store import MemoryStore, RoomRecord, UserRecord, new_id
from undercover_client.schemas import Room, RoomCreate

router = APIRouter()


def room_view(store: MemoryStore, room: RoomRecord) -> Room:
    group = store.groups.get(room.group_id) if room.group_id else None
    return Room(
        id=room.id,
        name=room.name,
        group_id=room.group_id,
        game_mode=room.game_mode,
        created_at=room.created_at,
        group=group_view(group) if group else None,
    )


def load_room(store: MemoryStore, room_id: str, user: UserRecord) -> RoomRecord:
    room = store.rooms.get(room_id)
    if room is None or room.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@router.get("", response_model=List[Room])
async def list_rooms(current_user: UserRecord = Depends(get_current_user), store: MemoryStore = Depends(get_store)):
    return [room_view(store, r) for r in store.rooms.values() if r.owner_id == current_user.id]


@router.post("", response_model=Room, status_code=status.HTTP_201_CREATED)
async def create_room(
    data: RoomCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    """创建房间 - 可关联一个玩家分组"""
    if data.group_id:
        load_group(store, data.group_id, current_user)
    room = RoomRecord(
        id=new_id(),
        owner_id=current_user.id,
        name=data.name,
        group_id=data.group_id,
        game_mode=data.game_mode,
    )
    store.rooms[room.id] = room
    return room_view(store, room)


@router.get("/{room_id}", response_model=Room)
async def get_room(
    room_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    return room_view(store, load_room(store, room_id, current_user))
