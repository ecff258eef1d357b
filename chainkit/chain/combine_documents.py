"""
文档合并 chain

- Stuff：所有文档拼接成一个上下文，调用一次模型
- Refine：按顺序逐个处理文档，用新文档不断修正已有答案
- MapReduce：逐个文档调用 map chain，再把结果合并调用一次模型

文档总是按传入顺序处理，不并发
"""

from typing import Any
from collections.abc import Sequence

from loguru import logger

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.exceptions import InvalidInputValuesError
from chainkit.chain.llm import LLMChain
from chainkit.chain.memory import BaseMemory
from chainkit.chain.prompt import PromptTemplate
from chainkit.chain.values import ChainValues
from chainkit.types import Document

DEFAULT_DOCUMENT_PROMPT = PromptTemplate("{{page_content}}")


def format_document(doc: Document, prompt: PromptTemplate = DEFAULT_DOCUMENT_PROMPT) -> str:
    """用文档内容和元数据渲染文档模板

    模板可以使用 `page_content` 以及 metadata 中的任意 key
    """
    return prompt.format(**{**doc.metadata, "page_content": doc.page_content})


class BaseCombineDocumentsChain(Chain):
    """文档合并 chain 基类"""

    def __init__(
        self,
        input_key: str = "input_documents",
        output_key: str = "text",
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        self.input_key = input_key
        self.output_key = output_key

    @property
    def output_keys(self) -> list[str]:
        return [self.output_key]

    @staticmethod
    async def _predict(
        chain: LLMChain,
        inputs: dict[str, Any],
        run_manager: CallbackManager,
    ) -> Any:
        outputs = await chain.ainvoke(inputs, callbacks=run_manager.handlers)
        return outputs[chain.output_key]


class StuffDocumentsChain(BaseCombineDocumentsChain):
    """把全部文档格式化后用分隔符拼接，作为一个变量传给 llm_chain

    文档列表可以为空，此时上下文为空字符串
    """

    def __init__(
        self,
        llm_chain: LLMChain,
        document_variable_name: str = "context",
        document_prompt: PromptTemplate = DEFAULT_DOCUMENT_PROMPT,
        document_separator: str = "\n\n",
        **kwargs: Any,
    ):
        """
        Args:
            llm_chain: 接收拼接上下文的 LLMChain
            document_variable_name: 上下文在 llm_chain 提示词中的变量名
            document_prompt: 单个文档的渲染模板
            document_separator: 文档之间的分隔符
            **kwargs: input_key、output_key 等通用参数
        """
        super().__init__(**kwargs)
        self.llm_chain = llm_chain
        self.document_variable_name = document_variable_name
        self.document_prompt = document_prompt
        self.document_separator = document_separator

    @property
    def input_keys(self) -> list[str]:
        extra = [key for key in self.llm_chain.input_keys if key != self.document_variable_name]
        return [self.input_key, *extra]

    def combine_docs_context(self, docs: Sequence[Document]) -> str:
        return self.document_separator.join(format_document(doc, self.document_prompt) for doc in docs)

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        docs = inputs.get_documents(self.input_key)
        rest = inputs.omit([self.input_key])
        logger.debug(f"StuffDocumentsChain combining {len(docs)} documents")

        llm_inputs = {**rest, self.document_variable_name: self.combine_docs_context(docs)}
        return {self.output_key: await self._predict(self.llm_chain, llm_inputs, run_manager)}


class RefineDocumentsChain(BaseCombineDocumentsChain):
    """逐个文档修正答案

    第一个文档交给 initial_llm_chain 生成初始答案，之后每个文档和当前答案一起交给 refine_llm_chain。
    输入中已带有 initial_response_name 时，从该答案继续修正，所有文档都走 refine_llm_chain。
    """

    def __init__(
        self,
        initial_llm_chain: LLMChain,
        refine_llm_chain: LLMChain,
        document_variable_name: str = "context",
        initial_response_name: str = "existing_answer",
        document_prompt: PromptTemplate = DEFAULT_DOCUMENT_PROMPT,
        **kwargs: Any,
    ):
        """
        Args:
            initial_llm_chain: 处理第一个文档的 chain
            refine_llm_chain: 用后续文档修正答案的 chain
            document_variable_name: 文档在提示词中的变量名
            initial_response_name: 当前答案在 refine 提示词中的变量名
            document_prompt: 单个文档的渲染模板
            **kwargs: input_key、output_key 等通用参数
        """
        super().__init__(**kwargs)
        self.initial_llm_chain = initial_llm_chain
        self.refine_llm_chain = refine_llm_chain
        self.document_variable_name = document_variable_name
        self.initial_response_name = initial_response_name
        self.document_prompt = document_prompt

    @property
    def input_keys(self) -> list[str]:
        provided = {self.document_variable_name, self.initial_response_name}
        keys = [self.input_key]
        for key in [*self.initial_llm_chain.input_keys, *self.refine_llm_chain.input_keys]:
            if key not in provided and key not in keys:
                keys.append(key)
        return keys

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        docs = inputs.get_documents(self.input_key)
        if not docs:
            raise InvalidInputValuesError(self.input_key, "Documents list has no elements")

        rest = inputs.omit([self.input_key])

        if self.initial_response_name in rest:
            answer = rest[self.initial_response_name]
            remaining = docs
            logger.debug(f"RefineDocumentsChain resuming from existing answer with {len(docs)} documents")
        else:
            initial_inputs = {**rest, self.document_variable_name: format_document(docs[0], self.document_prompt)}
            answer = await self._predict(self.initial_llm_chain, initial_inputs, run_manager)
            remaining = docs[1:]

        for index, doc in enumerate(remaining):
            refine_inputs = {
                **rest,
                self.document_variable_name: format_document(doc, self.document_prompt),
                self.initial_response_name: answer,
            }
            answer = await self._predict(self.refine_llm_chain, refine_inputs, run_manager)
            logger.debug(f"RefineDocumentsChain refined {index + 1}/{len(remaining)}")

        return {self.output_key: answer}


class MapReduceDocumentsChain(BaseCombineDocumentsChain):
    """先对每个文档执行 map chain，再用 combine chain 合并结果"""

    def __init__(
        self,
        llm_chain: LLMChain,
        combine_document_chain: StuffDocumentsChain,
        document_variable_name: str = "context",
        document_prompt: PromptTemplate = DEFAULT_DOCUMENT_PROMPT,
        return_intermediate_steps: bool = False,
        **kwargs: Any,
    ):
        """
        Args:
            llm_chain: 对单个文档执行的 map chain
            combine_document_chain: 合并 map 结果的 chain
            document_variable_name: 文档在 map 提示词中的变量名
            document_prompt: 单个文档的渲染模板
            return_intermediate_steps: 是否在输出中附带每个文档的 map 结果（key 为 intermediate_steps）
            **kwargs: input_key、output_key 等通用参数
        """
        super().__init__(**kwargs)
        self.llm_chain = llm_chain
        self.combine_document_chain = combine_document_chain
        self.document_variable_name = document_variable_name
        self.document_prompt = document_prompt
        self.return_intermediate_steps = return_intermediate_steps

    @property
    def input_keys(self) -> list[str]:
        # combine chain 的文档由 map 结果提供
        combine_chain = self.combine_document_chain
        combine_keys = [key for key in combine_chain.input_keys if key != combine_chain.input_key]
        keys = [self.input_key]
        for key in [*self.llm_chain.input_keys, *combine_keys]:
            if key != self.document_variable_name and key not in keys:
                keys.append(key)
        return keys

    @property
    def output_keys(self) -> list[str]:
        if self.return_intermediate_steps:
            return [self.output_key, "intermediate_steps"]
        return [self.output_key]

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        docs = inputs.get_documents(self.input_key)
        rest = inputs.omit([self.input_key])

        mapped: list[Document] = []
        for doc in docs:
            map_inputs = {**rest, self.document_variable_name: format_document(doc, self.document_prompt)}
            result = await self._predict(self.llm_chain, map_inputs, run_manager)
            mapped.append(Document(page_content=str(result), metadata=doc.metadata))
        logger.debug(f"MapReduceDocumentsChain mapped {len(mapped)} documents")

        combine_inputs = {**rest, self.combine_document_chain.input_key: mapped}
        combined = await self.combine_document_chain.ainvoke(combine_inputs, callbacks=run_manager.handlers)

        outputs: dict[str, Any] = {self.output_key: combined[self.combine_document_chain.output_key]}
        if self.return_intermediate_steps:
            outputs["intermediate_steps"] = [doc.page_content for doc in mapped]
        return outputs


__all__ = [
    "DEFAULT_DOCUMENT_PROMPT",
    "format_document",
    "BaseCombineDocumentsChain",
    "StuffDocumentsChain",
    "RefineDocumentsChain",
    "MapReduceDocumentsChain",
]
