"""后端集成层。

该包下的模块负责：
- 定义传输层抽象接口 (base)。
- SSE 事件流解码 (sse)。
- 流式聊天传输 (chat_transport) 与会话存储客户端 (sessions_client)。
"""

from typing import Optional

import httpx

from auri_core.config.settings import settings
from auri_core.domain.conversation import IdentityProvider
from auri_core.providers.base import ChatTransportClient
from auri_core.providers.chat_transport import ChatTransport
from auri_core.providers.sessions_client import SessionStoreClient


def create_chat_transport(
    identity: IdentityProvider,
    *,
    request_timeout: Optional[float] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> ChatTransportClient:
    """使用全局配置创建聊天传输实例。"""

    return ChatTransport(identity, settings, request_timeout=request_timeout, transport=transport)


def create_session_store(
    identity: IdentityProvider,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> SessionStoreClient:
    """使用全局配置创建会话存储客户端。"""

    return SessionStoreClient(identity, settings, transport=transport)
