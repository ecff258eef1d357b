"""
Tokenizer 实现

只负责 `文本 -> token 数`，消息列表先拼接成文本再计数
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

import tiktoken

from chainkit.types import ChatMessage, stringify_chat_messages


class BaseTokenizer(ABC):
    """Tokenizer 抽象基类"""

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """计算文本的 token 数"""

    def count_message_tokens(self, messages: Sequence[ChatMessage]) -> int:
        """计算消息列表的 token 数"""
        return self.count_tokens(stringify_chat_messages(messages))


class SimpleTokenizer(BaseTokenizer):
    """近似 tokenizer

    使用字符数 / 4 估算，不依赖任何词表
    """

    def count_tokens(self, text: str) -> int:
        return len(text) // 4


class TiktokenTokenizer(BaseTokenizer):
    """基于 tiktoken 的 tokenizer

    词表在第一次计数时才加载
    """

    def __init__(self, encoding_name: str = "gpt2", encoding: tiktoken.Encoding | None = None):
        """
        Args:
            encoding_name: tiktoken 编码名称
            encoding: 已加载的编码对象（优先使用）
        """
        self.encoding_name = encoding_name
        self._encoding = encoding

    @classmethod
    def for_model(cls, model_name: str) -> "TiktokenTokenizer":
        """按模型名选择编码，未知模型回退到 gpt2"""
        try:
            encoding_name = tiktoken.encoding_name_for_model(model_name)
        except KeyError:
            encoding_name = "gpt2"
        return cls(encoding_name)

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def get_token_ids(self, text: str) -> list[int]:
        return self.encoding.encode(text)

    def count_tokens(self, text: str) -> int:
        return len(self.get_token_ids(text))


__all__ = [
    "BaseTokenizer",
    "SimpleTokenizer",
    "TiktokenTokenizer",
]
