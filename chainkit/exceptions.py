"""
模型层异常定义

定义模型创建、配置、provider 调用等过程中的错误。
取消（asyncio.CancelledError）不属于这里的任何一类，总是原样向上传播。
"""


class LLMError(Exception):
    """模型层基础异常类

    所有模型相关异常的基类，用于统一捕获和处理模型层的错误。
    """


class LLMConfigError(LLMError):
    """配置错误

    构造模型或 adapter 时发现配置无效，构造阶段立即抛出，不会在调用阶段出现。

    典型场景：
    - 缺少必需的配置项（如 api_key、base_url 等）
    - 未知的 provider 标识
    - 配置值超出有效范围
    """


class LLMModelNotFoundError(LLMConfigError):
    """模型未找到错误

    典型场景：
    - 模型类型未注册
    - 配置文件中不存在指定名称的模型配置
    """


class LLMAPIError(LLMError):
    """Provider 调用错误

    传输层、HTTP 或 SDK 调用失败时抛出，原始异常保存在 __cause__ 中。
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LLMDecodeError(LLMAPIError):
    """响应解析错误

    provider 返回的数据格式不符合预期，不返回任何部分结果。
    """


class LLMTimeoutError(LLMAPIError):
    """请求超时错误"""


class LLMRateLimitError(LLMAPIError):
    """速率限制错误

    重试次数用尽后仍被限流时抛出。
    """


class LLMCapabilityError(LLMError):
    """能力不支持错误

    典型场景：
    - 对不支持流式的 provider 请求流式输出
    - 对 completion 模型传入消息列表
    """


class LLMStreamingError(LLMDecodeError):
    """流式输出错误

    流式响应块格式错误时抛出，已经收到的 token 不会作为结果返回。
    """


__all__ = [
    "LLMError",
    "LLMConfigError",
    "LLMModelNotFoundError",
    "LLMAPIError",
    "LLMDecodeError",
    "LLMTimeoutError",
    "LLMRateLimitError",
    "LLMCapabilityError",
    "LLMStreamingError",
]
