"""
Word Pair Pydantic schemas
词汇对数据模型
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, validator

from .common import ApiModel


class WordPair(ApiModel):
    """词汇对"""
    id: str
    civilian_word: str
    undercover_word: str
    created_at: Optional[datetime] = None


class WordPairCreate(ApiModel):
    """创建词汇对请求"""
    civilian_word: str = Field(..., min_length=1, max_length=50, description="平民词汇")
    undercover_word: str = Field(..., min_length=1, max_length=50, description="卧底词汇")

    @validator('civilian_word', 'undercover_word')
    def validate_words(cls, v):
        """验证词汇不为空"""
        v = v.strip()
        if not v:
            raise ValueError('词汇不能为空')
        return v

    @validator('undercover_word')
    def validate_different(cls, v, values):
        """平民词汇和卧底词汇不能相同"""
        civilian = values.get('civilian_word')
        if civilian is not None and civilian.lower() == v.lower():
            raise ValueError('平民词汇和卧底词汇不能相同')
        return v


class WordUpload(ApiModel):
    """Bulk word pair upload"""
    words: List[WordPairCreate] = Field(..., min_length=1)
