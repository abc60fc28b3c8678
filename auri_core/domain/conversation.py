from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Protocol
from datetime import datetime
from .models import Role


@dataclass
class MessageRecord:
    id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)


class MessageStore(Protocol):
    """会话消息的只读存储协作方。

    聊天消息的写入由后端负责，本引擎只在导出对话记录时直接读取。
    """

    def list_messages(self, session_id: str) -> List[MessageRecord]:
        """按 created_at 升序返回消息。"""
        ...


class IdentityProvider(Protocol):
    """身份协作方，每次调用都重新读取，便于令牌刷新后立即生效。"""

    def get_current_auth_token(self) -> Optional[str]:
        ...

    def get_current_user_id(self) -> Optional[str]:
        ...


class StaticIdentityProvider:
    """固定令牌的身份提供方，适合脚本和测试。"""

    def __init__(self, token: Optional[str], user_id: Optional[str] = None):
        self.token = token
        self.user_id = user_id

    def get_current_auth_token(self) -> Optional[str]:
        return self.token

    def get_current_user_id(self) -> Optional[str]:
        return self.user_id
