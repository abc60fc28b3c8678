"""统一的对话与流式数据模型。

本模块定义了传输层、控制器与 UI 层之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- StreamChunk: 服务端事件流解码后的一个片段（token/session/done/error）。
- ConversationSession: 后端持久化的一次会话。

传输层（ChatTransport、SessionStoreClient）只依赖这些模型，
并负责在后端 JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union


# 消息角色类型（与后端 /chat 接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息。

    user/system 消息发送后不再修改；assistant 消息在流式输出期间
    通过 append() 逐个 token 增长，收到 done 后调用 freeze() 冻结。

    - role: 消息角色。
    - content: 纯文本内容。
    - meta: 附加元数据（如 demo 标记），不会发给后端。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)
    frozen: bool = False

    def append(self, text: str) -> None:
        if self.frozen:
            raise ValueError("cannot append to a frozen message")
        self.content += text

    def replace(self, text: str) -> None:
        """整体替换内容（用于把占位消息换成道歉文案）。"""

        if self.frozen:
            raise ValueError("cannot replace a frozen message")
        self.content = text

    def freeze(self) -> None:
        self.frozen = True

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TokenChunk:
    content: str
    type: Literal["token"] = "token"


@dataclass(frozen=True)
class SessionChunk:
    session_id: str
    type: Literal["session"] = "session"


@dataclass(frozen=True)
class DoneChunk:
    session_id: Optional[str] = None
    type: Literal["done"] = "done"


@dataclass(frozen=True)
class ErrorChunk:
    error: str
    type: Literal["error"] = "error"


StreamChunk = Union[TokenChunk, SessionChunk, DoneChunk, ErrorChunk]


def chunk_from_payload(data: Dict[str, Any]) -> Optional[StreamChunk]:
    """把一条事件 JSON 转成 StreamChunk，无法识别时返回 None。"""

    kind = data.get("type")
    if kind == "token":
        return TokenChunk(content=str(data.get("content") or ""))
    if kind == "session":
        session_id = data.get("session_id")
        return SessionChunk(session_id=str(session_id)) if session_id else None
    if kind == "done":
        session_id = data.get("session_id")
        return DoneChunk(session_id=str(session_id) if session_id else None)
    if kind == "error":
        return ErrorChunk(error=str(data.get("error") or "unknown error"))
    return None


@dataclass
class ConversationSession:
    """后端持久化的会话。

    - id: 会话 ID。
    - language_code: 会话语言（如 "sv"）。
    - created_at: 创建时间（UTC）。
    - message_count: 会话内消息条数。
    """

    id: str
    language_code: str
    created_at: datetime
    message_count: int = 0

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ConversationSession":
        """解析后端返回的会话 JSON。

        后端的条数字段形如 ``"messages": [{"count": 3}]``，
        也兼容直接给出 ``message_count``。
        """

        count = data.get("message_count")
        if count is None:
            counts = data.get("messages") or []
            count = counts[0].get("count", 0) if counts and isinstance(counts[0], dict) else 0
        created_raw = str(data.get("created_at") or "")
        return cls(
            id=str(data["id"]),
            language_code=data.get("lang") or data.get("language_code") or "",
            created_at=datetime.fromisoformat(created_raw.replace("Z", "+00:00")),
            message_count=int(count),
        )
