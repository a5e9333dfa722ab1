"""
Group management API endpoints
玩家分组API端点
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from undercover_client.devserver.auth import get_current_user, get_store
from undercover_client.devserver.store import GroupRecord, MemoryStore, PlayerRecord, UserRecord, new_id
from undercover_client.schemas import Group, GroupCreate, GroupUpdate, MessageResponse, Player, PlayerInput

router = APIRouter()


def group_view(group: GroupRecord) -> Group:
    return Group(
        id=group.id,
        name=group.name,
        description=group.description,
        created_at=group.created_at,
        players=[
            Player(id=p.id, name=p.name, avatar=p.avatar, user_id=p.user_id, created_at=p.created_at)
            for p in group.players
        ],
    )


def load_group(store: MemoryStore, group_id: str, user: UserRecord) -> GroupRecord:
    group = store.groups.get(group_id)
    if group is None or group.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


def _players(entries: List[PlayerInput], existing: Optional[List[PlayerRecord]] = None) -> List[PlayerRecord]:
    """Entries with a known id keep their player record, the rest are new players"""
    known = {p.id: p for p in existing or []}
    players = []
    for entry in entries:
        record = known.get(entry.id) if entry.id else None
        if record is None:
            record = PlayerRecord(id=new_id(), name=entry.name, avatar=entry.avatar, user_id=entry.user_id)
        else:
            record.name = entry.name
            record.avatar = entry.avatar
            record.user_id = entry.user_id
        players.append(record)
    return players


@router.get("", response_model=List[Group])
async def list_groups(current_user: UserRecord = Depends(get_current_user), store: MemoryStore = Depends(get_store)):
    return [group_view(g) for g in store.groups.values() if g.owner_id == current_user.id]


@router.post("", response_model=Group, status_code=status.HTTP_201_CREATED)
async def create_group(
    data: GroupCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    group = GroupRecord(
        id=new_id(),
        owner_id=current_user.id,
        name=data.name,
        description=data.description,
        players=_players(data.players),
    )
    store.groups[group.id] = group
    return group_view(group)


@router.get("/{group_id}", response_model=Group)
async def get_group(
    group_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    return group_view(load_group(store, group_id, current_user))


@router.put("/{group_id}", response_model=Group)
async def replace_group(
    group_id: str,
    data: GroupUpdate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    """Replaces the group; the player list order is the group order"""
    group = load_group(store, group_id, current_user)
    if data.name is not None:
        group.name = data.name
    group.description = data.description
    if data.players is not None:
        group.players = _players(data.players, group.players)
    return group_view(group)


@router.delete("/{group_id}", response_model=MessageResponse)
async def delete_group(
    group_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    group = load_group(store, group_id, current_user)
    del store.groups[group.id]
    for room in store.rooms.values():
        if room.group_id == group.id:
            room.group_id = None
    return MessageResponse(message="Group deleted")
