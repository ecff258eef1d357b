"""
Embedder 实现
"""

import random
from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """文本向量化抽象基类"""

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """批量向量化文档"""

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """向量化查询"""


class FakeEmbedder(BaseEmbedder):
    """测试用 embedder，返回服从标准正态分布的随机向量

    Args:
        size: 向量维度
        seed: 随机种子，便于测试复现
    """

    def __init__(self, size: int = 1536, seed: int | None = None):
        if size <= 0:
            raise ValueError("size must be positive")
        self.size = size
        self._random = random.Random(seed)

    def _vector(self) -> list[float]:
        return [self._random.gauss(0.0, 1.0) for _ in range(self.size)]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._vector() for _ in texts]

    async def embed_query(self, text: str) -> list[float]:
        return self._vector()


__all__ = [
    "BaseEmbedder",
    "FakeEmbedder",
]
