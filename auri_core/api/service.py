"""对外 API 服务模块。

提供简化的函数接口供上层应用调用，返回值都是可直接 JSON 序列化的字典。
身份提供方由调用方传入，不做全局查找。
"""

from typing import Optional, Dict, Any, List, Sequence

from auri_core.agents.conversation_controller import ConversationController
from auri_core.api.transcript import export_session_as_text
from auri_core.config.settings import settings
from auri_core.domain.conversation import IdentityProvider, MessageStore
from auri_core.domain.models import ChatMessage, ConversationSession
from auri_core.infrastructure.logging.logger import logger
from auri_core.infrastructure.storage.json_store import JsonMessageStore
from auri_core.providers import create_chat_transport, create_session_store


_store: Optional[MessageStore] = None


def get_default_store() -> MessageStore:
    """获取默认的本地消息存储（单例）。"""
    global _store
    if _store is None:
        _store = JsonMessageStore(root=settings.storage_root)
    return _store


def _session_to_dict(s: ConversationSession) -> Dict[str, Any]:
    return {
        "id": s.id,
        "language_code": s.language_code,
        "created_at": s.created_at.isoformat(),
        "message_count": s.message_count,
    }


def run_chat(
    identity: IdentityProvider,
    user_input: str,
    *,
    session_id: Optional[str] = None,
    language: Optional[str] = None,
    history: Optional[Sequence[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """运行一轮 Auri 对话。

    Args:
        identity: 身份提供方
        user_input: 用户输入内容
        session_id: 会话ID（可选，不提供则由后端创建）
        language: 语言代码（可选）
        history: 之前的消息，形如 ``[{"role": ..., "content": ...}]``

    Returns:
        包含会话ID、助手回复、行动计划、演示模式等字段的字典
    """
    controller = ConversationController(
        create_chat_transport(identity),
        language=language,
        session_id=session_id,
        history=[ChatMessage(role=m["role"], content=m["content"]) for m in history or []],
    )
    result = controller.send(user_input)
    if result.error is not None:
        logger.error("Chat failed", extra={"extra": {
            "session_id": session_id,
            "error": str(result.error),
        }})
    return {
        "ok": result.ok,
        "session_id": result.session_id,
        "assistant_message": result.assistant_message.content,
        "plan": result.plan.to_dict() if result.plan else None,
        "is_demo_mode": result.is_demo_mode,
        "demo_badge": controller.demo_badge,
        "cancelled": result.cancelled,
        "error": getattr(result.error, "code", None) if result.error else None,
        "retryable": result.retryable,
    }


def list_sessions(identity: IdentityProvider) -> List[Dict[str, Any]]:
    """列出当前用户的会话（新到旧，最多 50 条）。"""
    return [_session_to_dict(s) for s in create_session_store(identity).list()]


def create_session(identity: IdentityProvider, language_code: Optional[str] = None) -> Dict[str, Any]:
    return _session_to_dict(create_session_store(identity).create(language_code))


def delete_session(identity: IdentityProvider, session_id: str) -> None:
    create_session_store(identity).delete(session_id)


def export_session(session_id: str, language: Optional[str] = None, store: Optional[MessageStore] = None) -> str:
    """导出会话记录为纯文本。"""
    return export_session_as_text(store or get_default_store(), session_id, language=language)
