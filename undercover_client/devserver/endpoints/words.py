"""
Word pair API endpoints
词汇对API端点
"""

import random
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from undercover_client.devserver.auth import get_current_user, get_store
from undercover_client.devserver.store import MemoryStore, UserRecord, WordPairRecord
from undercover_client.schemas import MessageResponse, WordPair, WordPairCreate, WordUpload

router = APIRouter()


def word_view(word: WordPairRecord) -> WordPair:
    return WordPair(
        id=word.id,
        civilian_word=word.civilian_word,
        undercover_word=word.undercover_word,
        created_at=word.created_at,
    )


@router.get("", response_model=List[WordPair])
async def list_words(current_user: UserRecord = Depends(get_current_user), store: MemoryStore = Depends(get_store)):
    return [word_view(w) for w in store.words.values()]


@router.post("", response_model=WordPair, status_code=status.HTTP_201_CREATED)
async def create_word(
    data: WordPairCreate,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    return word_view(store.add_word(data.civilian_word, data.undercover_word))


@router.post("/upload", response_model=List[WordPair], status_code=status.HTTP_201_CREATED)
async def upload_words(
    data: WordUpload,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    """批量导入词汇对"""
    return [word_view(store.add_word(w.civilian_word, w.undercover_word)) for w in data.words]


@router.get("/random", response_model=WordPair)
async def random_word(
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    if not store.words:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No word pairs available")
    return word_view(random.choice(list(store.words.values())))


@router.delete("/{word_id}", response_model=MessageResponse)
async def delete_word(
    word_id: str,
    current_user: UserRecord = Depends(get_current_user),
    store: MemoryStore = Depends(get_store)
):
    if store.words.pop(word_id, None) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Word pair not found")
    return MessageResponse(message="Word pair deleted")
