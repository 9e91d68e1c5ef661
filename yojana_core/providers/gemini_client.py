"""Gemini 备用应答方适配器（Google 搜索增强）。

与主应答方的差异：
- 不携带会话历史，只发送前置说明 + 用户画像 + 当前查询。
- 先查 ResponseCache（键为原始查询文本），命中则不发任何网络请求。
- 响应里取不到文本不算错误，降级为固定的 NO_ANSWER_TEXT；
  只有底层 HTTP 调用失败才抛出 ResponderUnavailable。
- groundingChunks 中的 {title, uri} 原样透传为 Citation，缺少 uri 的丢弃。

接口：
- URL: {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from yojana_core.config.settings import settings
from yojana_core.domain.exceptions import ApiError, BusinessError, NetworkError, RateLimitError, ResponderUnavailable
from yojana_core.domain.models import AI_MODEL_SECONDARY, Citation, ResponderReply
from yojana_core.infrastructure.cache.response_cache import ResponseCache
from yojana_core.infrastructure.logging.logger import logger
from yojana_core.prompts import load_system_prompt
from yojana_core.providers.registry import GEMINI_CONFIG


NO_ANSWER_TEXT = "I'm sorry, I couldn't generate a response."


class GeminiClient:
    """Gemini 备用应答方客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings, cache: Optional[ResponseCache] = None):
        self._settings = cfg
        self._cache = cache

    def respond(self, query: str, user_context: Optional[Dict[str, Any]] = None) -> ResponderReply:
        cached = self._cache_get(query)
        if cached is not None:
            logger.info("Response cache hit", extra={"extra": {"provider": self.name}})
            return self._from_cache(cached)

        data = self._generate(self._build_prompt(query, user_context))
        reply = self._parse_response(data)
        self._cache_put(query, reply)
        return reply

    # ---- 缓存 ----

    def _cache_get(self, query: str) -> Optional[Dict[str, Any]]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(query)
        except BusinessError as e:
            # 缓存不可用时按未命中处理
            logger.warning(f"Response cache read failed: {e.message}", extra={"extra": {"code": e.code}})
            return None

    def _cache_put(self, query: str, reply: ResponderReply) -> None:
        if self._cache is None:
            return
        try:
            self._cache.put(query, self._to_cache(reply))
        except BusinessError as e:
            logger.warning(f"Response cache write failed: {e.message}", extra={"extra": {"code": e.code}})

    # ---- HTTP ----

    def _generate(self, prompt: str) -> Dict[str, Any]:
        api_key = getattr(self._settings, "gemini_api_key", None)
        if not api_key:
            raise ResponderUnavailable(code="MISSING_API_KEY", message="GEMINI_API_KEY not set", provider=self.name)
        model_cfg = GEMINI_CONFIG.models["search-chat"]
        model = getattr(self._settings, "gemini_model", None) or model_cfg.provider_model
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {
                "temperature": model_cfg.default_temperature,
                "maxOutputTokens": model_cfg.max_tokens,
            },
        }
        try:
            with httpx.Client(timeout=self._timeout(), trust_env=False) as client:
                resp = client.post(
                    f"{base.rstrip('/')}/models/{model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", provider=self.name, upstream_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, provider=self.name, upstream_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError:
            # 响应体无法解析时按“没有答案”处理，不视为失败
            return {}
        return data if isinstance(data, dict) else {}

    def _timeout(self) -> float:
        return getattr(self._settings, "secondary_timeout", None) or self._settings.http_timeout

    # ---- 解析 ----

    @staticmethod
    def _build_prompt(query: str, user_context: Optional[Dict[str, Any]]) -> str:
        context_json = json.dumps(user_context or {}, ensure_ascii=False)
        return (
            f"{load_system_prompt('secondary_preamble')}\n"
            f"User context: {context_json}\n"
            f"Query: {query}"
        )

    def _parse_response(self, data: Dict[str, Any]) -> ResponderReply:
        # 响应结构不符合预期时一律按“没有答案”处理
        candidates = data.get("candidates")
        first = candidates[0] if isinstance(candidates, list) and candidates else {}
        if not isinstance(first, dict):
            first = {}
        content = first.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            parts = []
        text = "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)).strip()
        metadata = first.get("groundingMetadata")
        return ResponderReply(
            text=text or NO_ANSWER_TEXT,
            ai_model=AI_MODEL_SECONDARY,
            model_name=GEMINI_CONFIG.models["search-chat"].display_name,
            sources=self._parse_sources(metadata if isinstance(metadata, dict) else {}),
        )

    @staticmethod
    def _parse_sources(metadata: Dict[str, Any]) -> List[Citation]:
        sources: List[Citation] = []
        chunks = metadata.get("groundingChunks")
        for chunk in chunks if isinstance(chunks, list) else []:
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if not isinstance(web, dict) or not web.get("uri"):
                continue
            sources.append(Citation(title=web.get("title") or "", uri=web["uri"]))
        return sources

    @staticmethod
    def _to_cache(reply: ResponderReply) -> Dict[str, Any]:
        return {
            "text": reply.text,
            "aiModel": reply.ai_model,
            "modelName": reply.model_name,
            "sources": [s.to_dict() for s in reply.sources],
        }

    @staticmethod
    def _from_cache(value: Dict[str, Any]) -> ResponderReply:
        return ResponderReply(
            text=value.get("text") or NO_ANSWER_TEXT,
            ai_model=value.get("aiModel") or AI_MODEL_SECONDARY,
            model_name=value.get("modelName"),
            sources=[
                Citation(title=s.get("title") or "", uri=s["uri"])
                for s in value.get("sources") or []
                if isinstance(s, dict) and s.get("uri")
            ],
        )
