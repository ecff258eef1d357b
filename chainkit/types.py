"""
类型定义

定义模型调用、消息、文档、Agent 决策的统一 Pydantic 模型
"""

import enum
from typing import Any
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field


class ModelTypeEnum(str, enum.Enum):
    """模型类型"""

    openai = "openai"
    openai_chat = "openai_chat"
    anthropic = "anthropic"
    cohere = "cohere"
    bedrock = "bedrock"
    sagemaker = "sagemaker"
    fake = "fake"
    fake_chat = "fake_chat"


class ChatMessageType(str, enum.Enum):
    """聊天消息类型"""

    human = "human"
    ai = "ai"
    system = "system"
    generic = "generic"


MESSAGE_PREFIXES: dict[ChatMessageType, str] = {
    ChatMessageType.human: "Human",
    ChatMessageType.ai: "AI",
    ChatMessageType.system: "System",
}


class ChatMessage(BaseModel):
    """聊天消息

    human/ai/system 三种固定角色，generic 类型通过 role 指定任意角色
    """

    model_config = ConfigDict(frozen=True)

    type: ChatMessageType = Field(description="消息类型")
    content: str = Field(description="消息内容")
    role: str | None = Field(default=None, description="角色名称（generic 消息专用）")

    @classmethod
    def human(cls, content: str) -> "ChatMessage":
        return cls(type=ChatMessageType.human, content=content)

    @classmethod
    def ai(cls, content: str) -> "ChatMessage":
        return cls(type=ChatMessageType.ai, content=content)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(type=ChatMessageType.system, content=content)

    @classmethod
    def generic(cls, role: str, content: str) -> "ChatMessage":
        return cls(type=ChatMessageType.generic, content=content, role=role)

    @property
    def prefix(self) -> str:
        if self.type == ChatMessageType.generic:
            return self.role or "Generic"
        return MESSAGE_PREFIXES[self.type]


def stringify_chat_messages(
    messages: Sequence[ChatMessage],
    human_prefix: str = "Human",
    ai_prefix: str = "AI",
) -> str:
    """将消息列表拼接成文本，每条消息一行，格式为 `前缀: 内容`

    Args:
        messages: 消息列表（顺序保持不变）
        human_prefix: human 消息前缀
        ai_prefix: ai 消息前缀

    Returns:
        拼接后的文本
    """
    lines = []
    for message in messages:
        if message.type == ChatMessageType.human:
            prefix = human_prefix
        elif message.type == ChatMessageType.ai:
            prefix = ai_prefix
        else:
            prefix = message.prefix
        lines.append(f"{prefix}: {message.content}")
    return "\n".join(lines)


class Document(BaseModel):
    """文档

    构造后不可变，metadata 的 key 由使用者自定义
    """

    model_config = ConfigDict(frozen=True)

    page_content: str = Field(description="文档内容")
    metadata: dict[str, Any] = Field(default_factory=dict, description="文档元数据")


class TokenUsage(BaseModel):
    """Token 使用统计"""

    prompt_tokens: int = Field(default=0, description="输入token数")
    completion_tokens: int = Field(default=0, description="输出token数")
    total_tokens: int = Field(default=0, description="总token数")

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class Generation(BaseModel):
    """一次生成结果的最小单元"""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="生成的文本")
    message: ChatMessage | None = Field(default=None, description="聊天模型返回的消息")
    info: dict[str, Any] = Field(default_factory=dict, description="provider 附加信息（finish_reason 等）")


class ModelResult(BaseModel):
    """模型调用结果

    每次调用新建，调用方取出需要的 Generation 后即可丢弃
    """

    model_config = ConfigDict(frozen=True)

    generations: list[Generation] = Field(description="生成结果列表（N-best 时多个）")
    llm_output: dict[str, Any] = Field(default_factory=dict, description="模型级别输出（token_usage 等）")

    @property
    def text(self) -> str:
        return self.generations[0].text if self.generations else ""

    @property
    def token_usage(self) -> TokenUsage | None:
        usage = self.llm_output.get("token_usage")
        if isinstance(usage, TokenUsage):
            return usage
        if isinstance(usage, dict):
            return TokenUsage.model_validate(usage)
        return None


class GenerateOptions(BaseModel):
    """单次生成的调用参数

    provider 不支持的参数会被忽略
    """

    stop: list[str] | None = Field(default=None, description="停止序列")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0, description="温度参数")
    max_tokens: int | None = Field(default=None, ge=1, description="最大输出token数")
    top_p: float | None = Field(default=None, ge=0.0, le=1.0, description="nucleus sampling参数")
    top_k: int | None = Field(default=None, ge=0, description="top-k sampling参数")
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0, description="频率惩罚")
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0, description="存在惩罚")
    n: int | None = Field(default=None, ge=1, description="每个提示词返回的生成数量")


class StreamChunk(BaseModel):
    """流式响应块"""

    text: str = Field(default="", description="增量文本")
    usage: TokenUsage | None = Field(default=None, description="本块携带的 token 增量")
    finish_reason: str | None = Field(default=None, description="结束原因（仅最后一块）")


class StringPromptValue(BaseModel):
    """文本形式的提示词"""

    model_config = ConfigDict(frozen=True)

    text: str

    def to_string(self) -> str:
        return self.text

    def to_messages(self) -> list[ChatMessage]:
        return [ChatMessage.human(self.text)]


class ChatPromptValue(BaseModel):
    """消息列表形式的提示词"""

    model_config = ConfigDict(frozen=True)

    messages: list[ChatMessage]

    def to_string(self) -> str:
        return stringify_chat_messages(self.messages)

    def to_messages(self) -> list[ChatMessage]:
        return list(self.messages)


PromptValue = StringPromptValue | ChatPromptValue


class AgentAction(BaseModel):
    """Agent 单步决策：调用哪个工具、输入是什么"""

    model_config = ConfigDict(frozen=True)

    tool: str = Field(description="工具名称")
    tool_input: str = Field(description="工具输入")
    log: str = Field(default="", description="模型原始输出")


class AgentFinish(BaseModel):
    """Agent 终止决策"""

    model_config = ConfigDict(frozen=True)

    return_values: dict[str, Any] = Field(description="最终返回值")
    log: str = Field(default="", description="模型原始输出")


class AgentStep(BaseModel):
    """已完成的一步：决策及其观察结果"""

    model_config = ConfigDict(frozen=True)

    action: AgentAction
    observation: str


class BaseExtraConfig(BaseModel):
    """extra_config 基础类型

    所有 provider 的 extra_config 都应继承此类
    通过配置驱动行为，减少 hook 方法
    """

    # ========== API配置（配置驱动） ==========
    endpoint: str = Field(default="", description="API端点路径")
    requires_auth: bool = Field(default=True, description="是否需要认证")
    requires_base_url: bool = Field(default=False, description="是否必须配置 base_url")
    api_key_env: str | None = Field(default=None, description="未配置 api_key 时读取的环境变量")
    auth_header: str = Field(default="Authorization", description="认证头名称")
    auth_type: str = Field(default="Bearer", description="认证类型")

    # ========== 响应解析配置 ==========
    response_content_path: str = Field(default="choices.0.text", description="响应内容路径")
    response_finish_reason_path: str = Field(default="choices.0.finish_reason", description="响应finish_reason路径")

    # ========== 重试配置（配置驱动） ==========
    retry_on_status_codes: list[int] = Field(
        default_factory=lambda: [429, 500, 502, 503, 504], description="重试的状态码列表",
    )
    retry_strategy: str = Field(default="exponential", description="重试策略：exponential/linear/constant")

    # ========== 额外HTTP头和查询参数 ==========
    headers: dict[str, str] = Field(default_factory=dict, description="额外的HTTP头")
    query_params: dict[str, str] = Field(default_factory=dict, description="查询参数")

    def to_dict(self) -> dict[str, Any]:
        """转换为字典

        Returns:
            不包含 None 值的字典
        """
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BaseExtraConfig":
        """从字典创建实例，忽略未知字段

        Args:
            data: 配置字典

        Returns:
            类型化的实例
        """
        valid_data = {k: v for k, v in data.items() if k in cls.model_fields}
        return cls.model_validate(valid_data)


class OpenAIExtraConfig(BaseExtraConfig):
    """OpenAI 特定配置

    使用官方SDK，大部分配置通过SDK处理
    """

    api_key_env: str | None = Field(default="OPENAI_API_KEY", description="未配置 api_key 时读取的环境变量")
    organization: str | None = Field(default=None, description="组织ID")


class AnthropicExtraConfig(BaseExtraConfig):
    """Anthropic 特定配置

    system 消息通过单独的 system 参数传递
    """

    api_key_env: str | None = Field(default="ANTHROPIC_API_KEY", description="未配置 api_key 时读取的环境变量")


class CohereExtraConfig(BaseExtraConfig):
    """Cohere 特定配置

    使用 httpx 直接调用 generate 接口
    """

    endpoint: str = Field(default="/v1/generate", description="API端点路径")
    api_key_env: str | None = Field(default="COHERE_API_KEY", description="未配置 api_key 时读取的环境变量")
    response_content_path: str = Field(default="generations.0.text", description="响应内容路径")
    response_finish_reason_path: str = Field(default="generations.0.finish_reason", description="响应finish_reason路径")


class BedrockExtraConfig(BaseExtraConfig):
    """Amazon Bedrock 特定配置

    认证走 AWS 凭证链，模型参数按 provider 原样透传
    """

    requires_auth: bool = Field(default=False, description="是否需要认证")
    region_name: str | None = Field(default=None, description="AWS 区域")
    aws_access_key_id: str | None = Field(default=None, description="AWS Access Key")
    aws_secret_access_key: str | None = Field(default=None, description="AWS Secret Key")
    aws_session_token: str | None = Field(default=None, description="AWS Session Token")
    model_params: dict[str, Any] = Field(default_factory=dict, description="provider 原生模型参数")


class SageMakerExtraConfig(BaseExtraConfig):
    """Amazon SageMaker Endpoint 特定配置"""

    requires_auth: bool = Field(default=False, description="是否需要认证")
    endpoint_name: str | None = Field(default=None, description="Endpoint 名称（默认使用 model_name）")
    region_name: str | None = Field(default=None, description="AWS 区域")
    aws_access_key_id: str | None = Field(default=None, description="AWS Access Key")
    aws_secret_access_key: str | None = Field(default=None, description="AWS Secret Key")
    aws_session_token: str | None = Field(default=None, description="AWS Session Token")
    model_params: dict[str, Any] = Field(default_factory=dict, description="透传给 content handler 的参数")


class FakeExtraConfig(BaseExtraConfig):
    """测试用模型配置"""

    requires_auth: bool = Field(default=False, description="是否需要认证")
    responses: list[str] = Field(default_factory=list, description="按顺序循环返回的响应")


class ModelConfig(BaseModel):
    """模型配置

    对应 etc/<environment>.yaml 中 models 下的一项
    """

    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(default="", description="配置名称")
    type: ModelTypeEnum = Field(description="模型类型")
    model_name: str = Field(description="模型标识符")
    api_key: str | None = Field(default=None, description="API密钥")
    base_url: str | None = Field(default=None, description="API基础URL")
    max_tokens: int = Field(default=256, ge=1, description="默认最大输出token数")
    default_temperature: float = Field(default=0.7, description="默认温度参数")
    default_top_p: float = Field(default=1.0, description="默认top_p")
    max_retries: int = Field(default=3, ge=0, description="最大重试次数")
    timeout: int = Field(default=60, description="请求超时时间(秒)")
    streaming: bool = Field(default=False, description="是否使用流式调用")
    verbose: bool = Field(default=False, description="是否输出详细日志")
    extra_config: dict[str, Any] = Field(default_factory=dict, description="provider特定扩展配置")
    is_default: bool = Field(default=False, description="是否默认配置")
    description: str = Field(default="", description="描述信息")


__all__ = [
    "ModelTypeEnum",
    "ChatMessageType",
    "ChatMessage",
    "stringify_chat_messages",
    "Document",
    "TokenUsage",
    "Generation",
    "ModelResult",
    "GenerateOptions",
    "StreamChunk",
    "StringPromptValue",
    "ChatPromptValue",
    "PromptValue",
    "AgentAction",
    "AgentFinish",
    "AgentStep",
    "BaseExtraConfig",
    "OpenAIExtraConfig",
    "AnthropicExtraConfig",
    "CohereExtraConfig",
    "BedrockExtraConfig",
    "SageMakerExtraConfig",
    "FakeExtraConfig",
    "ModelConfig",
]
