"""AI 应答方集成层。

该包下的模块负责：
- 定义应答方抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (bedrock_client、gemini_client)。
"""

from typing import Optional

from yojana_core.config.settings import settings
from yojana_core.infrastructure.cache.response_cache import ResponseCache, create_response_cache
from yojana_core.providers.base import PrimaryResponder, SecondaryResponder
from yojana_core.providers.bedrock_client import BedrockClient
from yojana_core.providers.gemini_client import GeminiClient


def create_primary_responder(cfg=None) -> PrimaryResponder:
    """创建主应答方实例，默认取全局配置。"""

    return BedrockClient(cfg or settings)


def create_secondary_responder(cfg=None, cache: Optional[ResponseCache] = None) -> SecondaryResponder:
    """创建备用应答方实例；未显式传入缓存时按配置新建一个。"""

    cfg = cfg or settings
    return GeminiClient(cfg, cache=cache if cache is not None else create_response_cache(cfg))
