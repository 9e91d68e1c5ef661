"""YojanaMitra Core 顶层包。

该包提供福利项目助手的后端核心实现，
包括配置加载、领域模型、主/备 AI 应答方适配、响应缓存、
双 AI 对话编排、项目推荐与 HTTP 接口等能力。
"""

from yojana_core.agents.chat_orchestrator import ChatOrchestrator, OrchestratorConfig

__all__ = ["ChatOrchestrator", "OrchestratorConfig"]
