"""Bedrock 主应答方适配器。

本模块负责：

1. 把会话历史（从新到旧）整理为时间顺序的 Anthropic messages。
2. 注入固定的人设 system 提示词，以及原样序列化的用户画像。
3. 调用 Bedrock runtime 的 InvokeModel HTTP 接口并处理网络/API 异常。
4. 从响应 JSON 的 content 块中提取文本，取不到文本视为失败。

接口：
- URL: {base_url}/model/{model_id}/invoke
- 认证: Authorization: Bearer <api_key>
"""

import json
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from yojana_core.config.settings import settings
from yojana_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ResponderUnavailable
from yojana_core.domain.models import AI_MODEL_PRIMARY, ChatTurn, ResponderReply
from yojana_core.prompts import load_system_prompt
from yojana_core.providers.registry import BEDROCK_CONFIG, ModelConfig


ANTHROPIC_VERSION = "bedrock-2023-05-31"


class BedrockClient:
    """Bedrock 主应答方客户端实现。"""

    name = "bedrock"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def respond(
        self,
        message: str,
        history: Sequence[ChatTurn],
        user_context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        """带历史上下文的一次对话调用。"""

        model_cfg = BEDROCK_CONFIG.models["chat"]
        messages = self._build_messages(message, history)
        system_prompt = self._build_system_prompt(user_context)
        text = self.invoke(messages, system=system_prompt, model_cfg=model_cfg)
        return ResponderReply(text=text, ai_model=AI_MODEL_PRIMARY, model_name=model_cfg.display_name)

    def invoke(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        model_cfg: Optional[ModelConfig] = None,
    ) -> str:
        """发送一次 InvokeModel 请求并返回文本。

        推荐器等非对话场景也复用此入口。
        """

        api_key = getattr(self._settings, "bedrock_api_key", None)
        if not api_key:
            # 未配置视同不可用，由编排器走回退路径
            raise ResponderUnavailable(code="MISSING_API_KEY", message="BEDROCK_API_KEY not set", provider=self.name)
        model_cfg = model_cfg or BEDROCK_CONFIG.models["chat"]
        payload: Dict[str, Any] = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": self._max_tokens(model_cfg),
            "temperature": model_cfg.default_temperature,
            "messages": messages,
        }
        if system:
            payload["system"] = system
        try:
            with httpx.Client(timeout=self._timeout(), trust_env=False) as client:
                resp = client.post(
                    self._invoke_url(model_cfg),
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Bedrock rate limit", provider=self.name, upstream_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, provider=self.name, upstream_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="MALFORMED_RESPONSE", message=f"Invalid JSON from Bedrock: {e}", provider=self.name)
        return self._extract_text(data)

    # ---- 辅助方法 ----

    def _invoke_url(self, model_cfg: ModelConfig) -> str:
        base = getattr(self._settings, "bedrock_endpoint", None) or BEDROCK_CONFIG.base_url
        model_id = getattr(self._settings, "bedrock_model_id", None) or model_cfg.provider_model
        return f"{base.rstrip('/')}/model/{quote(model_id, safe='')}/invoke"

    def _timeout(self) -> float:
        return getattr(self._settings, "primary_timeout", None) or self._settings.http_timeout

    def _max_tokens(self, model_cfg: ModelConfig) -> int:
        if model_cfg.logical_name == "chat":
            return getattr(self._settings, "bedrock_max_tokens", None) or model_cfg.max_tokens
        return model_cfg.max_tokens

    def _build_system_prompt(self, user_context: Optional[Dict[str, Any]]) -> str:
        prompt = load_system_prompt("primary_system")
        if user_context:
            prompt += f"\n\nUser Profile: {json.dumps(user_context, ensure_ascii=False)}"
        return prompt

    @staticmethod
    def _build_messages(message: str, history: Sequence[ChatTurn]) -> List[Dict[str, str]]:
        """把从新到旧的历史整理成时间顺序的消息列表，并追加当前问题。

        Anthropic 要求首条消息为 user 且角色交替，
        因此丢弃开头的 assistant 轮次，并合并相邻的同角色轮次。
        """

        ordered = sorted(history, key=lambda t: t.order_key)
        messages: List[Dict[str, str]] = []
        for turn in ordered:
            if not turn.text:
                continue
            if not messages and turn.role != "user":
                continue
            if messages and messages[-1]["role"] == turn.role:
                messages[-1]["content"] += "\n\n" + turn.text
            else:
                messages.append({"role": turn.role, "content": turn.text})
        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += "\n\n" + message
        else:
            messages.append({"role": "user", "content": message})
        return messages

    def _extract_text(self, data: Any) -> str:
        blocks = data.get("content") if isinstance(data, dict) else None
        parts: List[str] = []
        if isinstance(blocks, list):
            for block in blocks:
                if isinstance(block, dict) and block.get("type", "text") == "text" and block.get("text"):
                    parts.append(block["text"])
        text = "".join(parts).strip()
        if not text:
            raise ApiError(code="MALFORMED_RESPONSE", message="Bedrock response has no text content", provider=self.name)
        return text
