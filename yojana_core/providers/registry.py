"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gemini-3-flash-preview"。
- display_name：回答附带的模型展示名，便于用户知道是谁在回答。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置；
Settings 中的 bedrock_model_id / gemini_model 可覆盖默认的 provider_model。"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float
    display_name: str


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


# Bedrock 配置（主应答方 + 项目推荐）
BEDROCK_CONFIG = ProviderConfig(
    name="bedrock",
    base_url="https://bedrock-runtime.ap-south-1.amazonaws.com",
    models={
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="anthropic.claude-3-5-sonnet-20241022-v2:0",
            max_tokens=512,
            default_temperature=0.7,
            display_name="Bedrock Claude 3.5 Sonnet",
        ),
        "recommend": ModelConfig(
            logical_name="recommend",
            provider_model="anthropic.claude-3-5-sonnet-20241022-v2:0",
            max_tokens=1024,
            default_temperature=0.2,
            display_name="Bedrock Claude 3.5 Sonnet",
        ),
    },
)

# Gemini 配置（备用应答方，带 Google 搜索增强）
GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "search-chat": ModelConfig(
            logical_name="search-chat",
            provider_model="gemini-3-flash-preview",
            max_tokens=1024,
            default_temperature=0.7,
            display_name="Gemini 3 Flash (with Search Grounding)",
        )
    },
)

