"""
Chain 模块异常定义

提供 Chain、Agent、Tool、Memory、Prompt 相关的自定义异常
"""

from typing import Any


class ChainError(Exception):
    """Chain 基础异常"""


class ChainConfigError(ChainError):
    """Chain 构造配置错误

    构造阶段立即抛出，例如 SequentialChain 的输入输出 key 无法串联
    """


class InvalidInputValuesError(ChainError):
    """输入缺失或无效"""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing input value for key '{key}'")


class InputValuesWrongTypeError(ChainError):
    """输入类型错误"""

    def __init__(self, key: str, expected: str, value: Any):
        self.key = key
        self.expected = expected
        super().__init__(f"Input value for key '{key}' must be {expected}, got {type(value).__name__}")


class MissingVariableError(ChainError):
    """提示词模板缺少变量"""

    def __init__(self, variables: list[str]):
        self.variables = variables
        super().__init__(f"Missing prompt variables: {', '.join(variables)}")


class OutputParserError(ChainError):
    """输出解析异常"""

    def __init__(self, message: str, llm_output: str = ""):
        self.llm_output = llm_output
        super().__init__(message)


class UnableToParseOutputError(OutputParserError):
    """无法从模型输出中解析出 Agent 决策"""

    def __init__(self, llm_output: str):
        super().__init__(f"Could not parse LLM output: `{llm_output}`", llm_output)


class AgentError(ChainError):
    """Agent 异常"""


class MaxIterationsError(AgentError):
    """达到最大迭代次数异常"""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Agent reached maximum iterations ({max_iterations}) without completing")


class ToolError(ChainError):
    """Tool 异常"""


class ToolNotFoundError(ToolError):
    """工具未找到异常"""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found")


class BashProcessError(ToolError):
    """bash 命令以非零状态码退出"""

    def __init__(self, returncode: int, output: str):
        self.returncode = returncode
        self.output = output
        super().__init__(f"Bash process exited with code {returncode}: {output}")


class MemoryError(ChainError):
    """Memory 异常"""


class MemoryLoadError(MemoryError):
    """Memory 加载异常"""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message)


class MemorySaveError(MemoryError):
    """Memory 保存异常"""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message)


__all__ = [
    "ChainError",
    "ChainConfigError",
    "InvalidInputValuesError",
    "InputValuesWrongTypeError",
    "MissingVariableError",
    "OutputParserError",
    "UnableToParseOutputError",
    "AgentError",
    "MaxIterationsError",
    "ToolError",
    "ToolNotFoundError",
    "BashProcessError",
    "MemoryError",
    "MemoryLoadError",
    "MemorySaveError",
]
