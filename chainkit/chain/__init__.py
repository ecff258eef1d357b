"""
Chain 模块

核心特性：
- 统一的 Runnable 接口和 Chain 调用协议
- Prompt Template
- LLMChain 及顺序组合（pipe 操作符）
- 文档合并（stuff、refine、map_reduce）和摘要
- 检索问答
- Tool 和 Agent（ReAct）
- Memory
- 输出解析器
"""

# 核心基础
from chainkit.chain.base import Chain, Runnable
from chainkit.chain.values import ChainValues

# Prompt
from chainkit.chain.prompt import (
    ChatMessageTemplate,
    ChatPromptTemplate,
    MessagesPlaceholder,
    PromptTemplate,
)

# Chain
from chainkit.chain.llm import LLMChain
from chainkit.chain.sequential import SequentialChain, SimpleSequentialChain
from chainkit.chain.transform import TransformChain
from chainkit.chain.combine_documents import (
    MapReduceDocumentsChain,
    RefineDocumentsChain,
    StuffDocumentsChain,
    format_document,
)
from chainkit.chain.summarize import load_summarize_chain
from chainkit.chain.retrieval_qa import RetrievalQAChain, Retriever
from chainkit.chain.llm_bash import BashProcess, LLMBashChain

# Tool
from chainkit.chain.tool import Tool, tool

# Agent
from chainkit.chain.agent import (
    AgentExecutor,
    AgentStream,
    BaseAgent,
    ZeroShotReactAgent,
)

# Memory
from chainkit.chain.memory import (
    BaseMemory,
    ConversationBufferMemory,
    ConversationBufferWindowMemory,
    ConversationTokenBufferMemory,
    SimpleMemory,
)

# Output Parser
from chainkit.chain.output_parser import (
    BaseOutputParser,
    JsonOutputParser,
    MRKLOutputParser,
    StrOutputParser,
)

# Exceptions
from chainkit.chain.exceptions import (
    AgentError,
    BashProcessError,
    ChainConfigError,
    ChainError,
    InputValuesWrongTypeError,
    InvalidInputValuesError,
    MaxIterationsError,
    MissingVariableError,
    OutputParserError,
    ToolNotFoundError,
    UnableToParseOutputError,
)

__all__ = [
    # 核心
    "Runnable",
    "Chain",
    "ChainValues",
    # Prompt
    "PromptTemplate",
    "ChatPromptTemplate",
    "ChatMessageTemplate",
    "MessagesPlaceholder",
    # Chain
    "LLMChain",
    "SequentialChain",
    "SimpleSequentialChain",
    "TransformChain",
    "StuffDocumentsChain",
    "RefineDocumentsChain",
    "MapReduceDocumentsChain",
    "format_document",
    "load_summarize_chain",
    "Retriever",
    "RetrievalQAChain",
    "BashProcess",
    "LLMBashChain",
    # Tool
    "Tool",
    "tool",
    # Agent
    "BaseAgent",
    "ZeroShotReactAgent",
    "AgentExecutor",
    "AgentStream",
    # Memory
    "BaseMemory",
    "SimpleMemory",
    "ConversationBufferMemory",
    "ConversationBufferWindowMemory",
    "ConversationTokenBufferMemory",
    # Output Parser
    "BaseOutputParser",
    "StrOutputParser",
    "JsonOutputParser",
    "MRKLOutputParser",
    # 异常
    "ChainError",
    "ChainConfigError",
    "InvalidInputValuesError",
    "InputValuesWrongTypeError",
    "MissingVariableError",
    "OutputParserError",
    "UnableToParseOutputError",
    "AgentError",
    "MaxIterationsError",
    "ToolNotFoundError",
    "BashProcessError",
]
