"""
LLMChain

把提示词模板、语言模型和可选的输出解析器串成一个 chain
"""

from typing import Any
from collections.abc import Mapping, Sequence

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.memory import BaseMemory
from chainkit.chain.output_parser import BaseOutputParser
from chainkit.chain.prompt import BasePromptTemplate, PromptTemplate
from chainkit.chain.values import ChainValues
from chainkit.types import GenerateOptions
from util.general import truncate_content


class LLMChain(Chain):
    """格式化提示词后调用模型的 chain

    Example:
        >>> chain = LLMChain(llm, PromptTemplate("Tell me a joke about {{topic}}"))
        >>> await chain.apredict(topic="cats")
    """

    def __init__(
        self,
        llm: LanguageModel,
        prompt: BasePromptTemplate,
        output_key: str = "text",
        output_parser: BaseOutputParser | None = None,
        generate_options: GenerateOptions | None = None,
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        """初始化 LLMChain

        Args:
            llm: 语言模型（补全模型或聊天模型）
            prompt: 提示词模板
            output_key: 输出 key
            output_parser: 输出解析器，为空时输出去除首尾空白的模型文本
            generate_options: 每次调用使用的模型参数（例如 stop）
            memory: 记忆
            callbacks: 回调
            verbose: 是否挂载日志回调
        """
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        self.llm = llm
        self.prompt = prompt
        self.output_key = output_key
        self.output_parser = output_parser
        self.generate_options = generate_options

    @classmethod
    def from_string(cls, llm: LanguageModel, template: str, **kwargs: Any) -> "LLMChain":
        return cls(llm, PromptTemplate(template), **kwargs)

    @property
    def input_keys(self) -> list[str]:
        return self.prompt.input_variables

    @property
    def output_keys(self) -> list[str]:
        return [self.output_key]

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        prompt_value = self.prompt.format_prompt(**inputs)
        result = await self.llm.generate_prompt(
            prompt_value,
            self.generate_options,
            callbacks=run_manager.handlers,
        )

        text = result.text.strip()
        logger.debug(f"LLMChain output: {truncate_content(text)}")

        if self.output_parser is not None:
            return {self.output_key: await self.output_parser.parse(text)}
        return {self.output_key: text}

    async def apredict(self, callbacks: Sequence[BaseCallbackHandler] | None = None, **kwargs: Any) -> Any:
        """用关键字参数执行 chain，直接返回输出值"""
        outputs = await self.ainvoke(kwargs, callbacks=callbacks)
        return outputs[self.output_key]

    async def apredict_and_parse(self, parser: BaseOutputParser, **kwargs: Any) -> Any:
        return await parser.parse(await self.apredict(**kwargs))

    async def aapply_and_parse(self, inputs: Sequence[Mapping[str, Any]], parser: BaseOutputParser) -> list[Any]:
        results = await self.aapply(inputs)
        return [await parser.parse(result[self.output_key]) for result in results]


__all__ = [
    "LLMChain",
]
