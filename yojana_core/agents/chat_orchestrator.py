"""双 AI 对话编排核心模块。

对一条用户消息恰好产出一条助手轮次：
先落库用户轮次，再取最近历史，调用主应答方，失败时按调用方意愿回退到备用应答方，
两者都失败则给出致歉文案（aiModel="Error"），最后落库助手轮次。

唯一向调用方抛错的情况：主应答方失败且调用方不允许回退，此时原样抛出主应答方的错误。
会话存储的失败一律只记日志，不会阻止回答用户。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4
import time
import logging

from yojana_core.config.feature_flags import FeatureFlags
from yojana_core.domain.conversation import ConversationStore
from yojana_core.domain.exceptions import InvalidRequest, ResponderUnavailable, StoreUnavailable
from yojana_core.domain.models import (
    AI_MODEL_ERROR,
    APOLOGY_TEXT,
    ChatOutcome,
    ChatTurn,
    ResponderReply,
    new_conversation_id,
)
from yojana_core.providers.base import PrimaryResponder, SecondaryResponder
from yojana_core.infrastructure.logging.logger import logger


@dataclass
class OrchestratorConfig:
    history_turns: int = 5  # 提示词中携带的最近历史轮数


class ChatOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        primary: Optional[PrimaryResponder],
        secondary: Optional[SecondaryResponder] = None,
        flags: Optional[FeatureFlags] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self._store = store
        self._primary = primary
        self._secondary = secondary
        self._flags = flags or FeatureFlags()
        self._config = config or OrchestratorConfig()

    def handle_message(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None,
        allow_secondary_fallback: bool = True,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> ChatOutcome:
        """处理一条用户消息。

        Args:
            user_id: 用户ID（必填）
            message: 用户消息（必填，非空白）
            conversation_id: 会话ID（可选，不提供则按 user_id + 当前时间生成）
            allow_secondary_fallback: 主应答方失败时是否允许回退到备用应答方
            user_context: 用户画像，原样转交给应答方

        Returns:
            ChatOutcome，包含会话ID、用户轮次与助手轮次

        Raises:
            InvalidRequest: user_id 或 message 为空，此时不做任何 I/O
            ResponderUnavailable: 主应答方失败且不允许回退
        """
        if not (user_id or "").strip() or not (message or "").strip():
            raise InvalidRequest(code="MISSING_FIELDS", message="Missing userId or message in request body")

        start_time = time.time()
        conversation_id = conversation_id or new_conversation_id(user_id)
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "conversation_id": conversation_id,
        }
        # 开关在编排开始时读取一次
        primary_enabled = self._flags.is_primary_enabled()
        secondary_enabled = self._flags.is_secondary_enabled()

        # 1. 先落库用户轮次，保证助手回复之前一定能看到对应的提问
        user_turn = ChatTurn.create(conversation_id, user_id, "user", message)
        self._append(user_turn, log_ctx)

        # 2. 取最近历史（不含刚写入的这条）
        history = self._recent_history(user_turn, log_ctx)

        # 3. 主应答方 -> 4. 备用应答方 / 致歉
        try:
            reply = self._call_primary(message, history, user_context, primary_enabled, log_ctx)
        except ResponderUnavailable as primary_error:
            if not allow_secondary_fallback:
                self._log(
                    logging.ERROR,
                    "Primary responder failed and fallback is not allowed",
                    log_ctx,
                    code=primary_error.code,
                    error=primary_error.message,
                )
                raise
            self._log(
                logging.WARNING,
                "Primary responder failed, falling back",
                log_ctx,
                code=primary_error.code,
                error=primary_error.message,
            )
            reply = self._call_secondary(message, user_context, secondary_enabled, log_ctx)

        # 5. 落库助手轮次
        assistant_turn = ChatTurn.create(
            conversation_id,
            user_id,
            "assistant",
            reply.text,
            ai_model=reply.ai_model or AI_MODEL_ERROR,
            model_name=reply.model_name,
            sources=list(reply.sources),
        )
        self._append(assistant_turn, log_ctx)

        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            ai_model=assistant_turn.ai_model,
            history_turns=len(history),
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return ChatOutcome(conversation_id=conversation_id, assistant_turn=assistant_turn, user_turn=user_turn)

    def get_history(self, conversation_id: str, limit: int) -> List[ChatTurn]:
        """返回会话最近 limit 条轮次（从旧到新）；存储不可用时返回空列表。"""

        try:
            turns = self._store.recent(conversation_id, limit)
        except StoreUnavailable as e:
            self._log(logging.ERROR, "Failed to read chat history", {"conversation_id": conversation_id}, error=e.message)
            return []
        return list(reversed(turns))

    def compare_responses(self, message: str, user_context: Optional[Dict[str, Any]] = None) -> Dict[str, ResponderReply]:
        """让主/备应答方分别回答同一问题，用于 A/B 对比。

        两侧互不影响，任一侧失败只在该侧给出致歉文案，不落库。
        """

        if not (message or "").strip():
            raise InvalidRequest(code="MISSING_FIELDS", message="Missing message in request body")
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}
        results: Dict[str, ResponderReply] = {}
        try:
            results["primary"] = self._call_primary(message, [], user_context, self._flags.is_primary_enabled(), log_ctx)
        except ResponderUnavailable as e:
            self._log(logging.WARNING, "Primary responder failed in comparison", log_ctx, code=e.code)
            results["primary"] = ResponderReply(text=APOLOGY_TEXT, ai_model=AI_MODEL_ERROR)
        results["secondary"] = self._call_secondary(message, user_context, self._flags.is_secondary_enabled(), log_ctx)
        return results

    # ---- 内部步骤 ----

    def _append(self, turn: ChatTurn, log_ctx: Dict[str, Any]) -> bool:
        """尽力写入一条轮次；失败只记日志，返回是否成功。"""
        try:
            self._store.append(turn)
        except StoreUnavailable as e:
            self._log(logging.ERROR, "Failed to store chat turn", log_ctx, role=turn.role, code=e.code, error=e.message)
            return False
        self._log(logging.INFO, "Stored chat turn", log_ctx, role=turn.role, sort_key=turn.sort_key)
        return True

    def _recent_history(self, current: ChatTurn, log_ctx: Dict[str, Any]) -> List[ChatTurn]:
        limit = self._config.history_turns
        if limit <= 0:
            return []
        try:
            turns = self._store.recent(current.conversation_id, limit + 1)
        except StoreUnavailable as e:
            self._log(logging.WARNING, "History unavailable, continuing without context", log_ctx, error=e.message)
            return []
        return [t for t in turns if t.sort_key != current.sort_key][:limit]

    def _call_primary(
        self,
        message: str,
        history: List[ChatTurn],
        user_context: Optional[Dict[str, Any]],
        enabled: bool,
        log_ctx: Dict[str, Any],
    ) -> ResponderReply:
        if not enabled:
            raise ResponderUnavailable(code="RESPONDER_DISABLED", message="Primary responder is disabled via feature flag")
        if self._primary is None:
            raise ResponderUnavailable(code="RESPONDER_NOT_CONFIGURED", message="Primary responder is not configured")
        self._log(logging.INFO, "Calling primary responder", log_ctx, provider=self._primary.name, history_turns=len(history), message=message)
        return self._primary.respond(message, history, user_context)

    def _call_secondary(
        self,
        message: str,
        user_context: Optional[Dict[str, Any]],
        enabled: bool,
        log_ctx: Dict[str, Any],
    ) -> ResponderReply:
        """调用备用应答方；任何不可用（含开关关闭）都降级为致歉轮次。"""
        if not enabled or self._secondary is None:
            self._log(logging.ERROR, "Secondary responder unavailable", log_ctx, enabled=enabled)
            return ResponderReply(text=APOLOGY_TEXT, ai_model=AI_MODEL_ERROR)
        self._log(logging.INFO, "Calling secondary responder", log_ctx, provider=self._secondary.name, query=message)
        try:
            return self._secondary.respond(message, user_context)
        except ResponderUnavailable as e:
            self._log(logging.ERROR, "Both responders failed", log_ctx, code=e.code, error=e.message)
            return ResponderReply(text=APOLOGY_TEXT, ai_model=AI_MODEL_ERROR)

    @staticmethod
    def _log(level: int, event: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, event, extra={"extra": payload})
