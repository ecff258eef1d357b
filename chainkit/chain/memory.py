"""
Memory 实现

为 chain 提供跨调用的状态：调用前加载记忆变量，调用后保存上下文。
Memory 内部不加锁，并发调用应使用各自的 Memory 实例。
"""

from abc import ABC, abstractmethod
from typing import Any
from collections.abc import Mapping

from loguru import logger

from chainkit.chain.exceptions import MemoryLoadError, MemorySaveError
from chainkit.tokenizer import BaseTokenizer, SimpleTokenizer
from chainkit.types import ChatMessage, stringify_chat_messages


class BaseMemory(ABC):
    """Memory 抽象基类"""

    @property
    @abstractmethod
    def memory_variables(self) -> list[str]:
        """load_memory_variables 返回的 key"""

    @abstractmethod
    async def load_memory_variables(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """加载记忆变量

        Args:
            inputs: 本次 chain 调用的输入

        Returns:
            记忆变量字典，会覆盖同名输入
        """

    @abstractmethod
    async def save_context(self, inputs: Mapping[str, Any], outputs: Mapping[str, Any]) -> None:
        """保存上下文到记忆

        Args:
            inputs: 本次 chain 调用的输入
            outputs: 本次 chain 调用的输出
        """

    @abstractmethod
    async def clear(self) -> None:
        """清空记忆"""


class SimpleMemory(BaseMemory):
    """静态记忆

    始终返回构造时给定的变量，save_context 和 clear 不改变状态
    """

    def __init__(self, memories: Mapping[str, Any] | None = None):
        self.memories: dict[str, Any] = dict(memories or {})

    @property
    def memory_variables(self) -> list[str]:
        return list(self.memories.keys())

    async def load_memory_variables(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        return dict(self.memories)

    async def save_context(self, inputs: Mapping[str, Any], outputs: Mapping[str, Any]) -> None:
        pass

    async def clear(self) -> None:
        pass


class BaseChatMemory(BaseMemory):
    """对话记忆基类

    每次 save_context 追加一条 human 消息和一条 ai 消息
    """

    def __init__(
        self,
        memory_key: str = "history",
        input_key: str | None = None,
        output_key: str | None = None,
        return_messages: bool = False,
        human_prefix: str = "Human",
        ai_prefix: str = "AI",
    ):
        """
        Args:
            memory_key: 记忆变量名
            input_key: 作为 human 消息的输入 key（为空时要求输入中只有一个非记忆 key）
            output_key: 作为 ai 消息的输出 key（为空时要求输出中只有一个 key）
            return_messages: True 返回消息列表，False 返回拼接后的文本
            human_prefix: 文本形式下 human 消息前缀
            ai_prefix: 文本形式下 ai 消息前缀
        """
        self.memory_key = memory_key
        self.input_key = input_key
        self.output_key = output_key
        self.return_messages = return_messages
        self.human_prefix = human_prefix
        self.ai_prefix = ai_prefix
        self.messages: list[ChatMessage] = []

    @property
    def memory_variables(self) -> list[str]:
        return [self.memory_key]

    def _select_key(self, values: Mapping[str, Any], key: str | None, kind: str) -> str:
        if key is not None:
            if key not in values:
                raise MemorySaveError(f"{type(self).__name__} {kind} key '{key}' not found")
            return key
        candidates = [k for k in values if k not in self.memory_variables]
        if len(candidates) != 1:
            raise MemorySaveError(
                f"{type(self).__name__} expected exactly one {kind} key, got {candidates}; set {kind}_key explicitly",
            )
        return candidates[0]

    def _buffer(self) -> list[ChatMessage]:
        return list(self.messages)

    async def load_memory_variables(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """
        Raises:
            MemoryLoadError: 记忆中存在不是 ChatMessage 的记录
        """
        messages = self._buffer()
        invalid = [type(message).__name__ for message in messages if not isinstance(message, ChatMessage)]
        if invalid:
            logger.error(f"{type(self).__name__} has malformed messages: {invalid}")
            raise MemoryLoadError(f"{type(self).__name__} contains non ChatMessage entries: {invalid}")
        logger.debug(f"{type(self).__name__} load - messages: {len(messages)}")
        if self.return_messages:
            return {self.memory_key: messages}
        return {self.memory_key: stringify_chat_messages(messages, self.human_prefix, self.ai_prefix)}

    async def save_context(self, inputs: Mapping[str, Any], outputs: Mapping[str, Any]) -> None:
        input_key = self._select_key(inputs, self.input_key, "input")
        output_key = self._select_key(outputs, self.output_key, "output")
        self.messages.append(ChatMessage.human(str(inputs[input_key])))
        self.messages.append(ChatMessage.ai(str(outputs[output_key])))
        self._prune()
        logger.debug(f"{type(self).__name__} save - messages: {len(self.messages)}")

    def _prune(self) -> None:
        pass

    async def clear(self) -> None:
        count = len(self.messages)
        self.messages.clear()
        logger.info(f"{type(self).__name__} cleared {count} messages")


class ConversationBufferMemory(BaseChatMemory):
    """完整保存所有对话"""


class ConversationBufferWindowMemory(BaseChatMemory):
    """只加载最近 k 轮对话"""

    def __init__(self, k: int = 5, **kwargs: Any):
        super().__init__(**kwargs)
        if k < 0:
            raise ValueError("k must be non-negative")
        self.k = k

    def _buffer(self) -> list[ChatMessage]:
        if self.k == 0:
            return []
        return self.messages[-self.k * 2 :]


class ConversationTokenBufferMemory(BaseChatMemory):
    """对话缓冲记忆

    保存后从最早的消息开始裁剪，直到总 token 数不超过 max_token_limit
    """

    def __init__(self, max_token_limit: int = 2000, tokenizer: BaseTokenizer | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.max_token_limit = max_token_limit
        self.tokenizer = tokenizer or SimpleTokenizer()

    def _prune(self) -> None:
        pruned = 0
        while self.messages and self.tokenizer.count_message_tokens(self.messages) > self.max_token_limit:
            self.messages.pop(0)
            pruned += 1
        if pruned:
            logger.debug(f"ConversationTokenBufferMemory pruned {pruned} messages")


__all__ = [
    "BaseMemory",
    "SimpleMemory",
    "BaseChatMemory",
    "ConversationBufferMemory",
    "ConversationBufferWindowMemory",
    "ConversationTokenBufferMemory",
]
