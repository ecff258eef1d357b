"""
输出解析器实现

提供将 LLM 输出转换为特定格式的解析器
"""

import re
from abc import abstractmethod
from typing import Any, Generic, TypeVar

import orjson
from loguru import logger
from pydantic import BaseModel, ValidationError

from chainkit.chain.base import Runnable
from chainkit.chain.exceptions import OutputParserError, UnableToParseOutputError
from chainkit.types import AgentAction, AgentFinish
from util.general import truncate_content

OutputT = TypeVar("OutputT")

FINAL_ANSWER_ACTION = "Final Answer:"

_ACTION_PATTERN = re.compile(r"Action:\s*(.+)\s*Action Input:\s*(.+)")


class BaseOutputParser(Generic[OutputT], Runnable[str, OutputT]):
    """输出解析器基类

    用于将 LLM 的字符串输出转换为特定格式
    """

    @abstractmethod
    async def parse(self, text: str) -> OutputT:
        """解析文本

        Args:
            text: LLM 输出文本

        Returns:
            解析后的数据

        Raises:
            OutputParserError: 解析失败
        """

    def get_format_instructions(self) -> str:
        return ""

    async def ainvoke(self, input: str) -> OutputT:
        return await self.parse(input)


class StrOutputParser(BaseOutputParser[str]):
    """字符串输出解析器，返回去除首尾空白的文本"""

    async def parse(self, text: str) -> str:
        return text.strip()


class JsonOutputParser(BaseOutputParser[Any]):
    """JSON 输出解析器

    会先截取第一个 `{`/`[` 到最后一个 `}`/`]` 之间的内容，以兼容模型输出的前后缀文本
    """

    def __init__(self, pydantic_object: type[BaseModel] | None = None):
        """
        Args:
            pydantic_object: 可选的 Pydantic 模型，用于校验解析结果
        """
        self.pydantic_object = pydantic_object

    async def parse(self, text: str) -> Any:
        logger.debug(f"JsonOutputParser parse - input length: {len(text)}")
        cleaned = self._clean_json_text(text)

        try:
            parsed = orjson.loads(cleaned)
        except orjson.JSONDecodeError as e:
            logger.error(f"JsonOutputParser JSON decode error: {e}")
            raise OutputParserError(f"Failed to parse JSON: {e}", text) from e

        if self.pydantic_object is not None:
            try:
                parsed = self.pydantic_object.model_validate(parsed).model_dump()
            except ValidationError as e:
                logger.error(f"JsonOutputParser validation error: {e}")
                raise OutputParserError(f"Failed to validate with {self.pydantic_object.__name__}: {e}", text) from e

        return parsed

    @staticmethod
    def _clean_json_text(text: str) -> str:
        text = text.strip()
        starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
        if not starts:
            return text
        start_idx = min(starts)
        # 外层括号由先出现的那个决定
        end_idx = text.rfind("}" if text[start_idx] == "{" else "]")
        if end_idx <= start_idx:
            return text
        return text[start_idx : end_idx + 1]

    def get_format_instructions(self) -> str:
        if self.pydantic_object is not None:
            schema = orjson.dumps(self.pydantic_object.model_json_schema()).decode()
            return f"Output must be a valid JSON object matching the following schema: {schema}"
        return "Output must be a valid JSON object."


class MRKLOutputParser(BaseOutputParser[AgentAction | AgentFinish]):
    """ReAct（MRKL）格式输出解析器

    - 包含 `Final Answer:` 时，取最后一次出现之后的内容作为最终答案
    - 否则必须包含 `Action: <工具名>` 和其后的 `Action Input: <输入>`
    """

    def __init__(self, output_key: str = "output"):
        self.output_key = output_key

    async def parse(self, text: str) -> AgentAction | AgentFinish:
        if FINAL_ANSWER_ACTION in text:
            answer = text.rsplit(FINAL_ANSWER_ACTION, 1)[-1].strip()
            logger.debug(f"MRKLOutputParser final answer: {truncate_content(answer)}")
            return AgentFinish(return_values={self.output_key: answer}, log=text)

        match = _ACTION_PATTERN.search(text)
        if match is None:
            logger.error(f"MRKLOutputParser unable to parse: {truncate_content(text)}")
            raise UnableToParseOutputError(text)

        tool = match.group(1).strip()
        tool_input = match.group(2).strip()
        logger.debug(f"MRKLOutputParser action: {tool}, input: {truncate_content(tool_input)}")
        return AgentAction(tool=tool, tool_input=tool_input, log=text)


__all__ = [
    "FINAL_ANSWER_ACTION",
    "BaseOutputParser",
    "StrOutputParser",
    "JsonOutputParser",
    "MRKLOutputParser",
]
