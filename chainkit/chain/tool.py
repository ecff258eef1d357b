"""
Tool 实现和装饰器

工具接收一个字符串输入，返回字符串观察结果，供 Agent 调用
"""

import inspect
from collections.abc import Callable, Sequence

from loguru import logger

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from util.general import truncate_content


class Tool:
    """工具抽象

    将 Python 函数（同步或异步）封装为 Agent 可调用的工具
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[[str], object],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ):
        """初始化 Tool

        Args:
            name: 工具名称（Agent 输出中 `Action:` 后的名字）
            description: 工具描述，会写进 Agent 提示词
            func: 工具函数，接收字符串输入
            callbacks: 回调
        """
        self.name = name
        self.description = description
        self.func = func
        self.callbacks = list(callbacks or [])

    async def ainvoke(self, tool_input: str, callbacks: Sequence[BaseCallbackHandler] | None = None) -> str:
        """调用工具

        Args:
            tool_input: 工具输入

        Returns:
            工具输出（非字符串结果会被转换为字符串）
        """
        run_manager = CallbackManager.configure(self.callbacks, callbacks)
        logger.debug(f"Tool '{self.name}' invoke - input: {truncate_content(tool_input)}")

        await run_manager.on_tool_start(self.name, tool_input)
        try:
            result = self.func(tool_input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool '{self.name}' execution failed: {e}")
            raise
        output = result if isinstance(result, str) else str(result)
        await run_manager.on_tool_end(self.name, output)

        logger.info(f"Tool '{self.name}' executed - output: {truncate_content(output)}")
        return output

    def __repr__(self) -> str:
        return f"Tool(name='{self.name}', description='{self.description}')"


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """装饰器：将函数转换为 Tool

    使用方式：
        @tool
        def search(query: str) -> str:
            \"\"\"Search the web\"\"\"
            ...

    或者：
        @tool(name="web_search", description="Search the web")
        async def search(query: str) -> str:
            ...

    Args:
        func: 被装饰的函数
        name: 工具名称（默认使用函数名）
        description: 工具描述（默认使用函数文档字符串）

    Returns:
        Tool 实例或装饰器函数
    """

    def decorator(f: Callable) -> Tool:
        return Tool(
            name=name or f.__name__,
            description=description or inspect.cleandoc(f.__doc__ or ""),
            func=f,
        )

    if func is not None:
        return decorator(func)
    return decorator


__all__ = [
    "Tool",
    "tool",
]
