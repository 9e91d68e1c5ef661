"""HTTP 接口（FastAPI）。

运行：
    uvicorn yojana_core.api.http:app --port 3001

路由：
- POST /chat/message        发送聊天消息（主/备双 AI）
- GET  /chat/history        读取会话历史
- POST /schemes/recommend   按用户画像推荐福利项目
- POST /compare-ai          主/备应答方回答对比
- GET  /models/info         模型与开关信息
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from yojana_core.agents.chat_orchestrator import ChatOrchestrator
from yojana_core.agents.scheme_recommender import SchemeRecommender
from yojana_core.api import service
from yojana_core.domain.exceptions import BusinessError
from yojana_core.infrastructure.logging.logger import logger


class ChatMessageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # userId / message 缺失时由编排器统一返回 400，而不是 FastAPI 的 422
    user_id: Optional[str] = Field(default=None, alias="userId")
    message: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    use_gemini: bool = Field(default=False, alias="useGemini")
    user_context: Optional[Dict[str, Any]] = Field(default=None, alias="userContext")


class RecommendBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_profile: Optional[Dict[str, Any]] = Field(default=None, alias="userProfile")
    top_n: int = Field(default=5, ge=1, le=50, alias="topN")


class CompareBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    user_context: Optional[Dict[str, Any]] = Field(default=None, alias="userContext")


def create_app(
    orchestrator: Optional[ChatOrchestrator] = None,
    recommender: Optional[SchemeRecommender] = None,
) -> FastAPI:
    """创建 FastAPI 应用；未注入的依赖在首次请求时按全局配置创建。"""

    app = FastAPI(title="YojanaMitra Assistant", version="0.1.0")
    app.state.orchestrator = orchestrator
    app.state.recommender = recommender

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error(f"Request failed: {exc.message}", extra={"extra": {"path": request.url.path, "code": exc.code}})
        return JSONResponse(
            status_code=exc.http_status,
            content={
                "error": exc.message if exc.http_status < 500 else "Request processing failed",
                "code": exc.code,
                "message": exc.message,
            },
        )

    @app.post("/chat/message")
    def chat_message(body: ChatMessageBody) -> Dict[str, Any]:
        return service.send_chat_message(
            user_id=body.user_id,
            message=body.message,
            conversation_id=body.conversation_id,
            use_gemini=body.use_gemini,
            user_context=body.user_context,
            orchestrator=app.state.orchestrator,
        )

    @app.get("/chat/history")
    def chat_history(
        conversation_id: Optional[str] = Query(default=None, alias="conversationId"),
        limit: Optional[int] = Query(default=None, ge=1),
    ) -> Dict[str, Any]:
        return service.get_chat_history(conversation_id, limit, orchestrator=app.state.orchestrator)

    @app.post("/schemes/recommend")
    def schemes_recommend(body: RecommendBody) -> Dict[str, Any]:
        return service.recommend_schemes(body.user_profile, body.top_n, recommender=app.state.recommender)

    @app.post("/compare-ai")
    def compare_ai(body: CompareBody) -> Dict[str, Any]:
        return service.compare_ai_responses(body.message, body.user_context, orchestrator=app.state.orchestrator)

    @app.get("/models/info")
    def models_info() -> Dict[str, Any]:
        return service.get_model_info()

    return app


app = create_app()
