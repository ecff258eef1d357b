"""
摘要 chain 工厂
"""

from typing import Any, Literal

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.chain.combine_documents import (
    BaseCombineDocumentsChain,
    MapReduceDocumentsChain,
    RefineDocumentsChain,
    StuffDocumentsChain,
)
from chainkit.chain.exceptions import ChainConfigError
from chainkit.chain.llm import LLMChain
from chainkit.chain.prompt import PromptTemplate

SummarizeChainType = Literal["stuff", "refine", "map_reduce"]

SUMMARIZE_PROMPT = PromptTemplate(
    """Write a concise summary of the following:


"{{text}}"


CONCISE SUMMARY:""",
)

REFINE_SUMMARIZE_PROMPT = PromptTemplate(
    """Your job is to produce a final summary.
We have provided an existing summary up to a certain point: {{existing_answer}}
We have the opportunity to refine the existing summary (only if needed) with some more context below.
------------
{{text}}
------------
Given the new context, refine the original summary.
If the context isn't useful, return the original summary.""",
)


def load_summarize_chain(
    llm: LanguageModel,
    chain_type: SummarizeChainType = "stuff",
    verbose: bool = False,
    **kwargs: Any,
) -> BaseCombineDocumentsChain:
    """创建摘要 chain

    Args:
        llm: 语言模型
        chain_type: stuff、refine 或 map_reduce
        verbose: 是否挂载日志回调
        **kwargs: 透传给对应文档合并 chain 的参数

    Returns:
        输入 key 为 input_documents、输出 key 为 text 的 chain

    Raises:
        ChainConfigError: 未知的 chain_type
    """
    logger.debug(f"load_summarize_chain - type: {chain_type}")

    if chain_type == "stuff":
        return StuffDocumentsChain(
            LLMChain(llm, SUMMARIZE_PROMPT, verbose=verbose),
            document_variable_name="text",
            verbose=verbose,
            **kwargs,
        )
    if chain_type == "refine":
        return RefineDocumentsChain(
            LLMChain(llm, SUMMARIZE_PROMPT, verbose=verbose),
            LLMChain(llm, REFINE_SUMMARIZE_PROMPT, verbose=verbose),
            document_variable_name="text",
            verbose=verbose,
            **kwargs,
        )
    if chain_type == "map_reduce":
        combine_chain = StuffDocumentsChain(
            LLMChain(llm, SUMMARIZE_PROMPT, verbose=verbose),
            document_variable_name="text",
            verbose=verbose,
        )
        return MapReduceDocumentsChain(
            LLMChain(llm, SUMMARIZE_PROMPT, verbose=verbose),
            combine_chain,
            document_variable_name="text",
            verbose=verbose,
            **kwargs,
        )
    raise ChainConfigError(f"Unsupported summarize chain type: {chain_type}")


__all__ = [
    "SummarizeChainType",
    "SUMMARIZE_PROMPT",
    "REFINE_SUMMARIZE_PROMPT",
    "load_summarize_chain",
]
