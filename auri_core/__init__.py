"""Auri Core 顶层包。

该包提供 Auri 对话引擎的核心实现，
包括配置加载、领域模型、SSE 流解码、聊天传输、会话存储客户端、
行动建议提取与对话控制器。
"""

from auri_core.actions.extractor import plan
from auri_core.agents.conversation_controller import ConversationController, ExchangeState

__all__ = ["ConversationController", "ExchangeState", "plan"]
