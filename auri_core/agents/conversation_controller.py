"""对话控制器。

负责单个对话线程中每一轮交互的状态机：

    IDLE -> SENDING -> STREAMING -> SETTLED_OK | SETTLED_ERROR

- 发送时把已有消息加上新的用户消息冻结为上下文，交给传输层。
- 传输层返回后立即追加一条空的助手占位消息。
- 每收到一个 token 就追加到占位消息，并立刻把消息列表重新发布给 UI（不做批量合并）。
- 收到 done 后冻结占位消息，同步调用 ActionExtractor 生成 ActionPlan。
- 收到 error 片段或传输层失败时，占位消息替换为本地化的道歉文案，不生成 ActionPlan。

一个控制器实例对应一个对话线程，同一时刻只允许一轮交互。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Sequence
import logging

from auri_core.actions.extractor import plan as default_extractor
from auri_core.config.settings import settings
from auri_core.domain.actions import ActionPlan
from auri_core.domain.exceptions import (
    ApiError,
    BusinessError,
    ConversationBusyError,
    ValidationError,
)
from auri_core.domain.models import (
    ChatMessage,
    DoneChunk,
    ErrorChunk,
    SessionChunk,
    TokenChunk,
)
from auri_core.infrastructure.logging.logger import logger
from auri_core.prompts import get_string
from auri_core.providers.base import ChatTransportClient, StreamingExchange


class ExchangeState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    SETTLED_OK = "settled_ok"
    SETTLED_ERROR = "settled_error"


_IN_FLIGHT = (ExchangeState.SENDING, ExchangeState.STREAMING)

Extractor = Callable[[str, str, Optional[str]], ActionPlan]
UpdateListener = Callable[[List[ChatMessage]], None]


@dataclass
class ExchangeResult:
    """一轮交互的最终结果。"""

    state: ExchangeState
    assistant_message: ChatMessage
    plan: Optional[ActionPlan] = None
    error: Optional[Exception] = None
    is_demo_mode: bool = False
    session_id: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.state == ExchangeState.SETTLED_OK

    @property
    def retryable(self) -> bool:
        return bool(getattr(self.error, "retryable", False))


@dataclass
class ConversationEvent:
    """控制器产生的流式事件。

    kind:
        - "status": 状态变化（进入 streaming 等），仅用于前端展示。
        - "delta": 收到一个 token，messages 为最新的消息列表。
        - "final": 本轮结束，携带 ExchangeResult。
    """

    kind: Literal["delta", "final", "status"]
    state: ExchangeState
    messages: List[ChatMessage]
    assistant_message: Optional[ChatMessage] = None
    delta_text: Optional[str] = None
    result: Optional[ExchangeResult] = None
    is_demo_mode: bool = False


class ConversationController:
    def __init__(
        self,
        transport: ChatTransportClient,
        *,
        language: Optional[str] = None,
        session_id: Optional[str] = None,
        history: Optional[Sequence[ChatMessage]] = None,
        extractor: Extractor = default_extractor,
        on_update: Optional[UpdateListener] = None,
    ):
        self._transport = transport
        self._extractor = extractor
        self._on_update = on_update
        self._exchange: Optional[StreamingExchange] = None
        self.language = language or settings.default_language
        self.session_id = session_id
        self.messages: List[ChatMessage] = []
        for msg in history or []:
            msg.freeze()
            self.messages.append(msg)
        self.state = ExchangeState.IDLE
        self.is_demo_mode = False
        self.last_result: Optional[ExchangeResult] = None

    @property
    def busy(self) -> bool:
        return self.state in _IN_FLIGHT

    @property
    def demo_badge(self) -> Optional[str]:
        """演示模式下 UI 应展示的徽标文案，非演示模式返回 None。"""

        if not self.is_demo_mode:
            return None
        return get_string(self.language, "demo_badge")

    def send(self, text: str) -> ExchangeResult:
        """执行一轮完整交互并返回结果（内部消费 send_stream）。"""

        result: Optional[ExchangeResult] = None
        for event in self.send_stream(text):
            if event.kind == "final":
                result = event.result
        if result is None:
            raise BusinessError(code="EXCHANGE_UNSETTLED", message="exchange ended without a result", http_status=500)
        return result

    def send_stream(self, text: str) -> Iterator[ConversationEvent]:
        """执行一轮流式交互，逐步产出 ConversationEvent。

        参数校验和并发检查在调用时立即完成：空消息抛 ValidationError，
        上一轮未结束抛 ConversationBusyError。
        状态切换和用户消息的追加在第一次迭代时才发生，
        没有被迭代就丢弃的流不会让控制器停留在忙碌状态。
        """

        content = (text or "").strip()
        if not content:
            raise ValidationError(code="VALIDATION_ERROR", message="message must not be empty")
        self._ensure_idle()
        return self._run_exchange(content)

    def abort(self) -> None:
        """中止进行中的交互，流静默结束，已收到的文本保留。"""

        if self._exchange is not None and self.busy:
            self._exchange.abort()

    def _ensure_idle(self) -> None:
        if self.busy:
            raise ConversationBusyError(code="CONVERSATION_BUSY", message="an exchange is already in progress")

    def _run_exchange(self, content: str) -> Iterator[ConversationEvent]:
        self._ensure_idle()
        self.state = ExchangeState.SENDING
        self.last_result = None
        user_msg = ChatMessage(role="user", content=content, frozen=True)
        self.messages.append(user_msg)
        context = list(self.messages)

        log_ctx: Dict[str, Any] = {"session_id": self.session_id, "lang": self.language}
        placeholder: Optional[ChatMessage] = None
        exchange: Optional[StreamingExchange] = None
        try:
            try:
                exchange = self._transport.send(context, self.language, {"session_id": self.session_id})
            except Exception as exc:
                yield self._fail(None, exc, log_ctx)
                return

            self._exchange = exchange
            self.is_demo_mode = bool(exchange.is_demo_mode)
            placeholder = ChatMessage(role="assistant", content="", meta={"demo_mode": self.is_demo_mode})
            self.messages.append(placeholder)
            self.state = ExchangeState.STREAMING
            yield self._event("status", placeholder)

            completed = False
            try:
                for chunk in exchange.stream:
                    if isinstance(chunk, TokenChunk):
                        placeholder.append(chunk.content)
                        yield self._event("delta", placeholder, delta_text=chunk.content)
                    elif isinstance(chunk, SessionChunk):
                        self.session_id = chunk.session_id
                    elif isinstance(chunk, DoneChunk):
                        if chunk.session_id:
                            self.session_id = chunk.session_id
                        completed = True
                        break
                    elif isinstance(chunk, ErrorChunk):
                        raise ApiError(code="STREAM_ERROR", message=chunk.error)
            except Exception as exc:
                yield self._fail(placeholder, exc, log_ctx)
                return
            finally:
                close = getattr(exchange.stream, "close", None)
                if close is not None:
                    close()

            cancelled = bool(getattr(exchange, "cancelled", False))
            if completed or cancelled or placeholder.content:
                yield self._settle(user_msg, placeholder, completed=completed, cancelled=cancelled, log_ctx=log_ctx)
            else:
                truncated = ApiError(code="STREAM_TRUNCATED", message="stream ended before completion")
                yield self._fail(placeholder, truncated, log_ctx)
        finally:
            if self.busy:
                # 消费方提前放弃迭代
                if exchange is not None:
                    exchange.abort()
                self._finish(ExchangeState.SETTLED_OK, placeholder, cancelled=True)
            self._exchange = None

    def _settle(
        self,
        user_msg: ChatMessage,
        placeholder: ChatMessage,
        *,
        completed: bool,
        cancelled: bool,
        log_ctx: Dict[str, Any],
    ) -> ConversationEvent:
        placeholder.freeze()
        action_plan: Optional[ActionPlan] = None
        if completed or not cancelled:
            if not completed:
                self._log(logging.WARNING, "Stream ended without done", log_ctx, chars=len(placeholder.content))
            action_plan = self._extractor(placeholder.content, user_msg.content, self.language)
        self._finish(
            ExchangeState.SETTLED_OK,
            placeholder,
            plan=action_plan,
            cancelled=cancelled and not completed,
        )
        self._log(
            logging.INFO,
            "Exchange settled",
            log_ctx,
            session_id=self.session_id,
            completed=completed,
            actions=len(action_plan.actions) if action_plan else 0,
        )
        return self._event("final", placeholder, result=self.last_result)

    def _fail(self, placeholder: Optional[ChatMessage], exc: Exception, log_ctx: Dict[str, Any]) -> ConversationEvent:
        apology = get_string(self.language, "apology")
        if placeholder is None:
            placeholder = ChatMessage(role="assistant", content=apology)
            self.messages.append(placeholder)
        else:
            placeholder.replace(apology)
        placeholder.freeze()
        if isinstance(exc, BusinessError):
            self._log(logging.WARNING, "Exchange failed", log_ctx, code=exc.code, error=exc.message)
        else:
            logger.error("Exchange failed unexpectedly", exc_info=exc, extra={"extra": dict(log_ctx)})
        self._finish(ExchangeState.SETTLED_ERROR, placeholder, error=exc)
        return self._event("final", placeholder, result=self.last_result)

    def _finish(
        self,
        state: ExchangeState,
        assistant: Optional[ChatMessage],
        *,
        plan: Optional[ActionPlan] = None,
        error: Optional[Exception] = None,
        cancelled: bool = False,
    ) -> None:
        if assistant is None:
            assistant = ChatMessage(role="assistant", content="", frozen=True)
        assistant.freeze()
        self.state = state
        self.last_result = ExchangeResult(
            state=state,
            assistant_message=assistant,
            plan=plan,
            error=error,
            is_demo_mode=self.is_demo_mode,
            session_id=self.session_id,
            cancelled=cancelled,
        )

    def _event(
        self,
        kind: Literal["delta", "final", "status"],
        assistant: Optional[ChatMessage],
        *,
        delta_text: Optional[str] = None,
        result: Optional[ExchangeResult] = None,
    ) -> ConversationEvent:
        snapshot = list(self.messages)
        if self._on_update is not None:
            self._on_update(snapshot)
        return ConversationEvent(
            kind=kind,
            state=self.state,
            messages=snapshot,
            assistant_message=assistant,
            delta_text=delta_text,
            result=result,
            is_demo_mode=self.is_demo_mode,
        )

    def _log(self, level: int, msg: str, ctx: Dict[str, Any], **extra: Any) -> None:
        payload = dict(ctx)
        payload.update(extra)
        logger.log(level, msg, extra={"extra": payload})
