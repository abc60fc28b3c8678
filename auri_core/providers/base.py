"""传输层抽象接口。

ConversationController 不直接依赖 httpx，而是依赖此协议：

- send(messages, language, options) 返回一个带 stream / is_demo_mode / abort 的对象。

这样测试或其他后端实现可以在不改控制器代码的前提下替换传输层。
"""

from typing import Any, Dict, Iterator, Optional, Protocol, Sequence

from auri_core.domain.models import ChatMessage, StreamChunk


class StreamingExchange(Protocol):
    stream: Iterator[StreamChunk]
    is_demo_mode: bool

    def abort(self) -> None:
        ...


class ChatTransportClient(Protocol):
    """聊天传输协议。"""

    name: str

    def send(
        self,
        messages: Sequence[ChatMessage],
        language: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> StreamingExchange:
        ...
