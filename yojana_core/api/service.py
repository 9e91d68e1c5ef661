"""对外 API 服务模块。

提供简化的函数接口供 HTTP 层或其他上层应用调用，
返回值即为对外 JSON 响应体（camelCase 字段）。
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from yojana_core.agents.chat_orchestrator import ChatOrchestrator, OrchestratorConfig
from yojana_core.agents.scheme_recommender import SchemeRecommender
from yojana_core.config.feature_flags import FeatureFlags
from yojana_core.config.settings import settings
from yojana_core.domain.conversation import ConversationStore
from yojana_core.domain.exceptions import InvalidRequest
from yojana_core.domain.models import ChatTurn, ResponderReply
from yojana_core.domain.schemes import load_scheme_catalog
from yojana_core.infrastructure.logging.logger import logger
from yojana_core.infrastructure.storage.json_store import JsonConversationStore
from yojana_core.providers import create_primary_responder, create_secondary_responder
from yojana_core.providers.bedrock_client import BedrockClient
from yojana_core.providers.registry import BEDROCK_CONFIG, GEMINI_CONFIG


_store: Optional[ConversationStore] = None
_orchestrator: Optional[ChatOrchestrator] = None
_recommender: Optional[SchemeRecommender] = None


def get_default_orchestrator() -> ChatOrchestrator:
    """获取默认的编排器实例（单例）。"""
    global _store, _orchestrator
    if _store is None:
        _store = JsonConversationStore(root=settings.storage_root, ttl_days=settings.history_ttl_days)
    if _orchestrator is None:
        _orchestrator = ChatOrchestrator(
            store=_store,
            primary=create_primary_responder(settings),
            secondary=create_secondary_responder(settings),
            flags=FeatureFlags(settings),
            config=OrchestratorConfig(history_turns=settings.history_context_turns),
        )
    return _orchestrator


def get_default_recommender() -> SchemeRecommender:
    """获取默认的项目推荐器实例（单例）。"""
    global _recommender
    if _recommender is None:
        _recommender = SchemeRecommender(
            client=BedrockClient(settings),
            catalog=load_scheme_catalog(settings.schemes_file),
            flags=FeatureFlags(settings),
        )
    return _recommender


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def send_chat_message(
    user_id: Optional[str],
    message: Optional[str],
    conversation_id: Optional[str] = None,
    use_gemini: bool = False,
    user_context: Optional[Dict[str, Any]] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> Dict[str, Any]:
    """发送一条聊天消息。

    Args:
        user_id: 用户ID
        message: 用户消息
        conversation_id: 会话ID（可选，不提供则创建新会话）
        use_gemini: 主应答方失败时是否允许回退到 Gemini
        user_context: 用户画像（可选）

    Returns:
        {success, conversationId, message, aiModel, modelName, sources, timestamp}

    Raises:
        InvalidRequest / ResponderUnavailable，见 domain.exceptions
    """
    orchestrator = orchestrator or get_default_orchestrator()
    try:
        outcome = orchestrator.handle_message(
            user_id=user_id or "",
            message=message or "",
            conversation_id=conversation_id,
            allow_secondary_fallback=use_gemini,
            user_context=user_context,
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": conversation_id,
            "error": str(e),
        }})
        raise

    turn = outcome.assistant_turn
    return {
        "success": True,
        "conversationId": outcome.conversation_id,
        "message": turn.text,
        "aiModel": turn.ai_model,
        "modelName": turn.model_name,
        "sources": [s.to_dict() for s in turn.sources],
        "timestamp": _now_iso(),
    }


def get_chat_history(
    conversation_id: Optional[str],
    limit: Optional[int] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> Dict[str, Any]:
    """获取会话历史（从旧到新），limit 被限制在 history_max_limit 以内。"""
    if not conversation_id:
        raise InvalidRequest(code="MISSING_CONVERSATION_ID", message="Missing conversationId parameter")
    limit = limit or settings.history_default_limit
    limit = max(1, min(limit, settings.history_max_limit))
    orchestrator = orchestrator or get_default_orchestrator()
    turns = orchestrator.get_history(conversation_id, limit)
    return {
        "success": True,
        "conversationId": conversation_id,
        "messages": [_turn_to_dict(t) for t in turns],
        "count": len(turns),
        "timestamp": _now_iso(),
    }


def recommend_schemes(
    user_profile: Optional[Dict[str, Any]],
    top_n: int = 5,
    recommender: Optional[SchemeRecommender] = None,
) -> Dict[str, Any]:
    """按用户画像返回推荐的福利项目。"""
    recommender = recommender or get_default_recommender()
    items = recommender.recommend(user_profile, top_n=top_n)
    return {
        "success": True,
        "recommendations": [r.to_dict() for r in items],
        "aiModel": recommender.model_name,
        "timestamp": _now_iso(),
    }


def compare_ai_responses(
    message: Optional[str],
    user_context: Optional[Dict[str, Any]] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> Dict[str, Any]:
    """主/备应答方对同一问题的回答对比。"""
    orchestrator = orchestrator or get_default_orchestrator()
    results = orchestrator.compare_responses(message or "", user_context)
    return {
        "success": True,
        "bedrock": _reply_to_dict(results["primary"]),
        "gemini": _reply_to_dict(results["secondary"]),
        "timestamp": _now_iso(),
    }


def get_model_info(cfg=None) -> Dict[str, Any]:
    """返回当前模型配置与开关状态。"""
    cfg = cfg or settings
    flags = FeatureFlags(cfg)
    return {
        "primaryModel": getattr(cfg, "bedrock_model_id", None) or BEDROCK_CONFIG.models["chat"].provider_model,
        "fallbackModel": getattr(cfg, "gemini_model", None) or GEMINI_CONFIG.models["search-chat"].provider_model,
        "region": cfg.bedrock_region,
        "maxTokens": cfg.bedrock_max_tokens,
        **flags.snapshot(),
    }


def _turn_to_dict(turn: ChatTurn) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "role": turn.role,
        "content": turn.text,
        "timestamp": turn.timestamp,
    }
    if turn.role == "assistant":
        item["aiModel"] = turn.ai_model
        item["sources"] = [s.to_dict() for s in turn.sources]
    return item


def _reply_to_dict(reply: ResponderReply) -> Dict[str, Any]:
    return {
        "message": reply.text,
        "aiModel": reply.ai_model,
        "modelName": reply.model_name,
        "sources": [s.to_dict() for s in reply.sources],
    }
