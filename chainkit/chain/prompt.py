"""
Prompt Template 实现

默认使用 `{{variable}}` 双花括号语法，也支持 Python f-string 风格的 `{variable}`
"""

import re
import string
from abc import ABC, abstractmethod
from typing import Any, Literal
from collections.abc import Mapping, Sequence

from loguru import logger

from chainkit.chain.base import Runnable
from chainkit.chain.exceptions import InputValuesWrongTypeError, MissingVariableError
from chainkit.types import (
    ChatMessage,
    ChatMessageType,
    ChatPromptValue,
    StringPromptValue,
    stringify_chat_messages,
)

TemplateFormat = Literal["double_brace", "f_string"]

_DOUBLE_BRACE_PATTERN = re.compile(r"\{\{\s*([A-Za-z_]\w*)\s*\}\}")

_ROLE_ALIASES: dict[str, ChatMessageType] = {
    "human": ChatMessageType.human,
    "user": ChatMessageType.human,
    "ai": ChatMessageType.ai,
    "assistant": ChatMessageType.ai,
    "system": ChatMessageType.system,
}


def _unique(items: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(items))


class BasePromptTemplate(Runnable[Mapping[str, Any], Any], ABC):
    """提示词模板基类

    预绑定的 partial 变量会和调用时传入的变量合并，同名时 partial 优先
    """

    def __init__(self, partial_variables: Mapping[str, Any] | None = None):
        self.partial_variables: dict[str, Any] = dict(partial_variables or {})

    @property
    @abstractmethod
    def fields(self) -> list[str]:
        """模板中出现的全部变量名（按首次出现顺序）"""

    @property
    def input_variables(self) -> list[str]:
        """调用时需要传入的变量（不含 partial 变量）"""
        return [name for name in self.fields if name not in self.partial_variables]

    def _merge_partials(self, kwargs: Mapping[str, Any]) -> dict[str, Any]:
        return {**kwargs, **self.partial_variables}

    @abstractmethod
    def format_prompt(self, **kwargs: Any) -> StringPromptValue | ChatPromptValue:
        """格式化为 PromptValue"""

    def format(self, **kwargs: Any) -> str:
        return self.format_prompt(**kwargs).to_string()


class PromptTemplate(BasePromptTemplate):
    """文本提示词模板

    Example:
        >>> PromptTemplate("Tell me about {{topic}}").format(topic="bees")
        'Tell me about bees'
    """

    def __init__(
        self,
        template: str,
        partial_variables: Mapping[str, Any] | None = None,
        template_format: TemplateFormat = "double_brace",
    ):
        """初始化提示词模板

        Args:
            template: 模板字符串
            partial_variables: 预绑定的变量
            template_format: 模板语法，double_brace（`{{var}}`）或 f_string（`{var}`）
        """
        super().__init__(partial_variables)
        self.template = template
        self.template_format = template_format
        self._fields = self._extract_variables(template)

    @classmethod
    def from_template(cls, template: str, **kwargs: Any) -> "PromptTemplate":
        return cls(template, **kwargs)

    def _extract_variables(self, template: str) -> list[str]:
        if self.template_format == "f_string":
            return _unique([field for _, field, _, _ in string.Formatter().parse(template) if field])
        return _unique(_DOUBLE_BRACE_PATTERN.findall(template))

    @property
    def fields(self) -> list[str]:
        return list(self._fields)

    def partial(self, **kwargs: Any) -> "PromptTemplate":
        """返回绑定了更多 partial 变量的新模板"""
        return PromptTemplate(
            self.template,
            partial_variables={**self.partial_variables, **kwargs},
            template_format=self.template_format,
        )

    def render(self, values: Mapping[str, Any]) -> str:
        """用已合并的变量渲染模板

        Raises:
            MissingVariableError: 缺少模板变量
        """
        missing = [name for name in self._fields if name not in values]
        if missing:
            logger.error(f"PromptTemplate missing variables: {missing}")
            raise MissingVariableError(missing)

        if self.template_format == "f_string":
            return self.template.format(**{name: values[name] for name in self._fields})
        return _DOUBLE_BRACE_PATTERN.sub(lambda match: str(values[match.group(1)]), self.template)

    def format_prompt(self, **kwargs: Any) -> StringPromptValue:
        return StringPromptValue(text=self.render(self._merge_partials(kwargs)))

    def format(self, **kwargs: Any) -> str:
        """格式化模板

        未使用的变量会被忽略

        Raises:
            MissingVariableError: 缺少模板变量
        """
        return self.render(self._merge_partials(kwargs))

    async def ainvoke(self, input: Mapping[str, Any]) -> str:
        logger.debug(f"PromptTemplate ainvoke - variables: {list(input.keys())}")
        return self.format(**input)

    def __repr__(self) -> str:
        return f"PromptTemplate(input_variables={self.input_variables})"


class MessagesPlaceholder:
    """消息占位符

    用于在聊天提示词模板中插入动态消息列表
    """

    def __init__(self, variable_name: str, optional: bool = False):
        """初始化消息占位符

        Args:
            variable_name: 变量名
            optional: 变量缺失时是否视为空列表
        """
        self.variable_name = variable_name
        self.optional = optional

    def format_messages(self, values: Mapping[str, Any]) -> list[ChatMessage]:
        if self.variable_name not in values:
            if self.optional:
                return []
            raise MissingVariableError([self.variable_name])
        messages = values[self.variable_name]
        if not isinstance(messages, list) or not all(isinstance(m, ChatMessage) for m in messages):
            raise InputValuesWrongTypeError(self.variable_name, "list[ChatMessage]", messages)
        return list(messages)

    def __repr__(self) -> str:
        return f"MessagesPlaceholder('{self.variable_name}')"


class ChatMessageTemplate:
    """单条消息模板"""

    def __init__(self, message_type: ChatMessageType, prompt: PromptTemplate, role: str | None = None):
        self.message_type = message_type
        self.prompt = prompt
        self.role = role

    def format_messages(self, values: Mapping[str, Any]) -> list[ChatMessage]:
        content = self.prompt.render(values)
        if self.message_type == ChatMessageType.generic:
            return [ChatMessage.generic(self.role or "generic", content)]
        return [ChatMessage(type=self.message_type, content=content)]


MessageLike = ChatMessage | MessagesPlaceholder | ChatMessageTemplate | tuple[str, str]


class ChatPromptTemplate(BasePromptTemplate):
    """聊天提示词模板

    Example:
        >>> prompt = ChatPromptTemplate.from_messages(
        ...     ("system", "You are a helpful assistant."),
        ...     MessagesPlaceholder("history", optional=True),
        ...     ("human", "{{question}}"),
        ... )
    """

    def __init__(
        self,
        messages: Sequence[MessageLike],
        partial_variables: Mapping[str, Any] | None = None,
        template_format: TemplateFormat = "double_brace",
    ):
        """初始化聊天提示词模板

        Args:
            messages: 消息列表，可以是 ChatMessage、MessagesPlaceholder、ChatMessageTemplate 或 (角色, 模板) 元组；
                角色为 human/user/ai/assistant/system 之外的值时生成 generic 消息
            partial_variables: 预绑定的变量
            template_format: 元组中模板字符串的语法
        """
        super().__init__(partial_variables)
        self.template_format = template_format
        self.messages = [self._convert(message) for message in messages]

    @classmethod
    def from_messages(cls, *messages: MessageLike, **kwargs: Any) -> "ChatPromptTemplate":
        return cls(list(messages), **kwargs)

    def _convert(self, message: MessageLike) -> ChatMessage | MessagesPlaceholder | ChatMessageTemplate:
        if isinstance(message, (ChatMessage, MessagesPlaceholder, ChatMessageTemplate)):
            return message
        role, template = message
        prompt = PromptTemplate(template, template_format=self.template_format)
        message_type = _ROLE_ALIASES.get(role, ChatMessageType.generic)
        return ChatMessageTemplate(message_type, prompt, role=role)

    @property
    def fields(self) -> list[str]:
        names: list[str] = []
        for message in self.messages:
            if isinstance(message, ChatMessageTemplate):
                names.extend(message.prompt.fields)
            elif isinstance(message, MessagesPlaceholder) and not message.optional:
                names.append(message.variable_name)
        return _unique(names)

    def format_messages(self, **kwargs: Any) -> list[ChatMessage]:
        """格式化为消息列表

        Raises:
            MissingVariableError: 缺少模板变量
        """
        values = self._merge_partials(kwargs)
        result: list[ChatMessage] = []
        for message in self.messages:
            if isinstance(message, ChatMessage):
                result.append(message)
            else:
                result.extend(message.format_messages(values))
        return result

    def format_prompt(self, **kwargs: Any) -> ChatPromptValue:
        return ChatPromptValue(messages=self.format_messages(**kwargs))

    def format(self, **kwargs: Any) -> str:
        return stringify_chat_messages(self.format_messages(**kwargs))

    async def ainvoke(self, input: Mapping[str, Any]) -> list[ChatMessage]:
        logger.debug(
            f"ChatPromptTemplate ainvoke - template messages: {len(self.messages)}, variables: {list(input.keys())}",
        )
        return self.format_messages(**input)


__all__ = [
    "TemplateFormat",
    "BasePromptTemplate",
    "PromptTemplate",
    "MessagesPlaceholder",
    "ChatMessageTemplate",
    "ChatPromptTemplate",
]
