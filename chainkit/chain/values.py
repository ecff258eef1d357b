"""
ChainValues

chain 之间传递的 `str -> Any` 映射，提供带类型检查的取值方法
"""

from typing import Any
from collections.abc import Iterable, Mapping

from chainkit.chain.exceptions import InputValuesWrongTypeError, InvalidInputValuesError
from chainkit.types import ChatMessage, Document


class ChainValues(dict[str, Any]):
    """chain 的输入/输出值

    缺失的 key 不会有默认值：取值时缺失抛 InvalidInputValuesError，类型不对抛 InputValuesWrongTypeError
    """

    def _require(self, key: str) -> Any:
        if key not in self:
            raise InvalidInputValuesError(key)
        return self[key]

    def get_string(self, key: str) -> str:
        value = self._require(key)
        if not isinstance(value, str):
            raise InputValuesWrongTypeError(key, "str", value)
        return value

    def get_documents(self, key: str) -> list[Document]:
        value = self._require(key)
        if not isinstance(value, list) or not all(isinstance(doc, Document) for doc in value):
            raise InputValuesWrongTypeError(key, "list[Document]", value)
        return list(value)

    def get_messages(self, key: str) -> list[ChatMessage]:
        value = self._require(key)
        if not isinstance(value, list) or not all(isinstance(msg, ChatMessage) for msg in value):
            raise InputValuesWrongTypeError(key, "list[ChatMessage]", value)
        return list(value)

    def get_number(self, key: str) -> float:
        value = self._require(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InputValuesWrongTypeError(key, "number", value)
        return value

    def get_mapping(self, key: str) -> dict[str, Any]:
        value = self._require(key)
        if not isinstance(value, Mapping):
            raise InputValuesWrongTypeError(key, "mapping", value)
        return dict(value)

    def clone(self) -> "ChainValues":
        """浅拷贝；列表值拷贝为新列表，避免 chain 之间共享同一个可变容器"""
        return ChainValues({key: list(value) if isinstance(value, list) else value for key, value in self.items()})

    def omit(self, keys: Iterable[str]) -> "ChainValues":
        excluded = set(keys)
        return ChainValues({key: value for key, value in self.items() if key not in excluded})


__all__ = [
    "ChainValues",
]
