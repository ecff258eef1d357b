"""
回调（观察者）实现

回调只观察执行过程，不参与控制流；但回调内部抛出的异常会从触发它的调用中传播出去。
"""

from typing import Any
from collections.abc import Sequence

from loguru import logger

from chainkit.types import AgentAction, AgentFinish, ModelResult, TokenUsage
from util.general import format_dict_for_log, truncate_content


class BaseCallbackHandler:
    """回调基类

    所有钩子默认什么都不做，子类按需覆盖
    """

    async def on_llm_start(self, model_name: str, prompts: list[str]) -> None:
        pass

    async def on_llm_new_token(self, token: str) -> None:
        pass

    async def on_llm_end(self, result: ModelResult) -> None:
        pass

    async def on_llm_error(self, error: BaseException) -> None:
        pass

    async def on_chain_start(self, chain_name: str, inputs: dict[str, Any]) -> None:
        pass

    async def on_chain_end(self, chain_name: str, outputs: dict[str, Any]) -> None:
        pass

    async def on_chain_error(self, chain_name: str, error: BaseException) -> None:
        pass

    async def on_tool_start(self, tool_name: str, tool_input: str) -> None:
        pass

    async def on_tool_end(self, tool_name: str, output: str) -> None:
        pass

    async def on_agent_action(self, action: AgentAction) -> None:
        pass

    async def on_agent_finish(self, finish: AgentFinish) -> None:
        pass


class CallbackManager:
    """按注册顺序依次 await 每个 handler"""

    def __init__(self, handlers: Sequence[BaseCallbackHandler] | None = None):
        self.handlers: list[BaseCallbackHandler] = list(handlers or [])

    @classmethod
    def configure(
        cls,
        *handler_groups: Sequence[BaseCallbackHandler] | None,
        verbose: bool = False,
    ) -> "CallbackManager":
        """合并多组 handler，verbose 时追加日志 handler

        同一个 handler 实例只保留一次
        """
        handlers: list[BaseCallbackHandler] = []
        for group in handler_groups:
            for handler in group or []:
                if not any(handler is h for h in handlers):
                    handlers.append(handler)

        if verbose and not any(isinstance(h, LoggingCallbackHandler) for h in handlers):
            handlers.append(LoggingCallbackHandler())

        return cls(handlers)

    async def on_llm_start(self, model_name: str, prompts: list[str]) -> None:
        for handler in self.handlers:
            await handler.on_llm_start(model_name, prompts)

    async def on_llm_new_token(self, token: str) -> None:
        for handler in self.handlers:
            await handler.on_llm_new_token(token)

    async def on_llm_end(self, result: ModelResult) -> None:
        for handler in self.handlers:
            await handler.on_llm_end(result)

    async def on_llm_error(self, error: BaseException) -> None:
        for handler in self.handlers:
            await handler.on_llm_error(error)

    async def on_chain_start(self, chain_name: str, inputs: dict[str, Any]) -> None:
        for handler in self.handlers:
            await handler.on_chain_start(chain_name, inputs)

    async def on_chain_end(self, chain_name: str, outputs: dict[str, Any]) -> None:
        for handler in self.handlers:
            await handler.on_chain_end(chain_name, outputs)

    async def on_chain_error(self, chain_name: str, error: BaseException) -> None:
        for handler in self.handlers:
            await handler.on_chain_error(chain_name, error)

    async def on_tool_start(self, tool_name: str, tool_input: str) -> None:
        for handler in self.handlers:
            await handler.on_tool_start(tool_name, tool_input)

    async def on_tool_end(self, tool_name: str, output: str) -> None:
        for handler in self.handlers:
            await handler.on_tool_end(tool_name, output)

    async def on_agent_action(self, action: AgentAction) -> None:
        for handler in self.handlers:
            await handler.on_agent_action(action)

    async def on_agent_finish(self, finish: AgentFinish) -> None:
        for handler in self.handlers:
            await handler.on_agent_finish(finish)


class LoggingCallbackHandler(BaseCallbackHandler):
    """verbose 模式下把执行过程写到 loguru"""

    async def on_llm_start(self, model_name: str, prompts: list[str]) -> None:
        for prompt in prompts:
            logger.info(f"[llm:start] {model_name} - prompt: {truncate_content(prompt, max_length=500)}")

    async def on_llm_end(self, result: ModelResult) -> None:
        logger.info(f"[llm:end] text: {truncate_content(result.text, max_length=500)}, llm_output: {format_dict_for_log(result.llm_output)}")

    async def on_llm_error(self, error: BaseException) -> None:
        logger.error(f"[llm:error] {error!r}")

    async def on_chain_start(self, chain_name: str, inputs: dict[str, Any]) -> None:
        logger.info(f"[chain:start] {chain_name} - inputs: {format_dict_for_log(inputs)}")

    async def on_chain_end(self, chain_name: str, outputs: dict[str, Any]) -> None:
        logger.info(f"[chain:end] {chain_name} - outputs: {format_dict_for_log(outputs)}")

    async def on_chain_error(self, chain_name: str, error: BaseException) -> None:
        logger.error(f"[chain:error] {chain_name} - {error!r}")

    async def on_tool_start(self, tool_name: str, tool_input: str) -> None:
        logger.info(f"[tool:start] {tool_name} - input: {truncate_content(tool_input)}")

    async def on_tool_end(self, tool_name: str, output: str) -> None:
        logger.info(f"[tool:end] {tool_name} - output: {truncate_content(output)}")

    async def on_agent_action(self, action: AgentAction) -> None:
        logger.info(f"[agent:action] {action.tool} - input: {truncate_content(action.tool_input)}")

    async def on_agent_finish(self, finish: AgentFinish) -> None:
        logger.info(f"[agent:finish] {format_dict_for_log(finish.return_values)}")


class TokenUsageCallbackHandler(BaseCallbackHandler):
    """累计所有模型调用的 token 使用量"""

    def __init__(self) -> None:
        self.usage = TokenUsage()
        self.successful_requests = 0

    async def on_llm_end(self, result: ModelResult) -> None:
        self.successful_requests += 1
        usage = result.token_usage
        if usage is not None:
            self.usage = self.usage + usage

    def __str__(self) -> str:
        return (
            f"Tokens Used: {self.usage.total_tokens}\n"
            f"\tPrompt Tokens: {self.usage.prompt_tokens}\n"
            f"\tCompletion Tokens: {self.usage.completion_tokens}\n"
            f"Successful Requests: {self.successful_requests}"
        )


__all__ = [
    "BaseCallbackHandler",
    "CallbackManager",
    "LoggingCallbackHandler",
    "TokenUsageCallbackHandler",
]
