"""Auri 聊天传输层。

本模块负责一轮对话的 HTTP 生命周期：

1. 每次调用都从身份协作方重新读取令牌，没有令牌直接失败，不重试。
2. 发送一次 POST /chat，附带 Bearer 头和 JSON 请求体 ``{messages, lang, ...}``。
3. 从响应头读取演示模式标记（后端没有模型密钥时返回脚本化文本）。
4. 非 2xx 响应转换为业务异常，尽量透出后端的错误信息。
5. 把响应体交给 SSE 解码器，返回惰性的 StreamChunk 序列。

超时是配置项：整轮对话有一个墙钟截止时间，到点后中止请求并抛出
RequestTimeoutError，UI 可以据此提供“重试”。调用 abort() 则会中止请求，
正在迭代的消费方只会看到序列结束，不会收到错误。
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

import httpx

from auri_core.config.settings import Settings
from auri_core.domain.conversation import IdentityProvider
from auri_core.domain.exceptions import NetworkError, RequestTimeoutError
from auri_core.domain.models import ChatMessage, StreamChunk
from auri_core.infrastructure.logging.logger import logger
from auri_core.providers.http_utils import auth_headers, raise_for_backend_error
from auri_core.providers.sse import CancelToken, iter_stream_chunks

_TRUTHY = {"1", "true", "yes", "on"}

# 等待响应头的工作线程，截止时间到了调用方不必继续阻塞
_HEADER_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="auri-chat-headers")


def _close_late_response(client: httpx.Client) -> Callable[[Future], None]:
    def _close(pending: Future) -> None:
        if not pending.cancelled() and pending.exception() is None:
            pending.result().close()
        client.close()

    return _close


class ChatExchange:
    """一轮进行中的对话。

    - stream: 惰性的 StreamChunk 序列，只能消费一次。
    - is_demo_mode: 后端是否处于演示模式。
    - abort(): 中止底层请求，序列静默结束。
    """

    def __init__(
        self,
        client: httpx.Client,
        response: httpx.Response,
        cancel: CancelToken,
        *,
        is_demo_mode: bool,
        timer: Optional[threading.Timer] = None,
    ):
        self._client = client
        self._response = response
        self._cancel = cancel
        self._timer = timer
        self._lock = threading.Lock()
        self._closed = False
        self.is_demo_mode = is_demo_mode
        self.stream: Iterator[StreamChunk] = iter_stream_chunks(
            self._iter_raw(),
            cancel=cancel,
            on_close=self.close,
        )

    @property
    def finished(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancel.cancelled

    def abort(self) -> None:
        """中止本轮对话，可重复调用。"""

        if self._cancel.cancel("abort"):
            logger.info("chat_transport.aborted")
        self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._timer is not None:
            self._timer.cancel()
        self._response.close()
        self._client.close()

    def _iter_raw(self) -> Iterator[bytes]:
        try:
            for data in self._response.iter_bytes():
                yield data
        except httpx.TimeoutException as e:
            if self._cancel.cancelled and not self._cancel.timed_out:
                return
            raise RequestTimeoutError(message=str(e) or "Request timed out")
        except (httpx.HTTPError, httpx.StreamError) as e:
            # abort()/截止时间关闭了响应，读取端会在这里收到异常
            if self._cancel.timed_out:
                raise RequestTimeoutError()
            if self._cancel.cancelled:
                return
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)


class ChatTransport:
    """聊天后端客户端。

    identity 在构造时注入（依赖注入代替全局查找），令牌在每次 send 时重新读取。
    transport 参数透传给 httpx.Client，测试中可传入 httpx.MockTransport。
    """

    name = "auri-chat"

    def __init__(
        self,
        identity: IdentityProvider,
        settings: Settings,
        *,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._identity = identity
        self._settings = settings
        self._request_timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self._transport = transport
        self._active: Optional[ChatExchange] = None

    @property
    def url(self) -> str:
        return f"{self._settings.api_base_url}{self._settings.chat_path}"

    def send(
        self,
        messages: Sequence[ChatMessage],
        language: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatExchange:
        """发起一轮对话，返回 ChatExchange。

        步骤：
        1. 读取令牌（没有则 UnauthenticatedError）。
        2. 中止同一传输对象上尚未结束的旧请求。
        3. 启动截止时间计时器并发送请求。
        4. 检查状态码、读取演示模式响应头。
        """

        headers = auth_headers(self._identity, json_body=True)
        headers["Accept"] = "text/event-stream"
        payload: Dict[str, Any] = {
            "messages": [m.to_payload() for m in messages],
            "lang": language,
        }
        for key, value in (options or {}).items():
            if value is not None:
                payload[key] = value

        if self._active is not None and not self._active.finished:
            self._active.abort()
            self._active = None

        cancel = CancelToken()
        deadline = self._request_timeout
        # 每个阶段的 httpx 超时都不超过整轮截止时间
        phase_timeout = min(self._settings.http_timeout, deadline) if deadline else self._settings.http_timeout
        client = httpx.Client(
            timeout=httpx.Timeout(phase_timeout),
            trust_env=False,
            transport=self._transport,
        )
        holder: Dict[str, httpx.Response] = {}

        def _on_deadline() -> None:
            if cancel.cancel("timeout"):
                logger.warning("chat_transport.timeout", extra={"extra": {"timeout": deadline}})
            response = holder.get("response")
            if response is not None:
                response.close()

        timer: Optional[threading.Timer] = None
        if deadline:
            timer = threading.Timer(deadline, _on_deadline)
            timer.daemon = True
            timer.start()

        logger.info(
            "chat_transport.request",
            extra={"extra": {"messages": len(payload["messages"]), "lang": language}},
        )
        try:
            request = client.build_request("POST", self.url, json=payload, headers=headers)
            response = self._open_stream(client, request, deadline, cancel)
        except RequestTimeoutError:
            if timer is not None:
                timer.cancel()
            raise
        except httpx.TimeoutException as e:
            self._cleanup(client, timer)
            raise RequestTimeoutError(message=str(e) or "Request timed out")
        except httpx.HTTPError as e:
            self._cleanup(client, timer)
            if cancel.timed_out:
                raise RequestTimeoutError()
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        holder["response"] = response

        try:
            if cancel.timed_out:
                raise RequestTimeoutError()
            if not response.is_success:
                response.read()
                raise_for_backend_error(response, url=self.url)
        except Exception:
            response.close()
            self._cleanup(client, timer)
            raise

        is_demo = (response.headers.get(self._settings.demo_mode_header) or "").strip().lower() in _TRUTHY
        logger.info(
            "chat_transport.stream_open",
            extra={"extra": {"status": response.status_code, "demo_mode": is_demo}},
        )
        exchange = ChatExchange(client, response, cancel, is_demo_mode=is_demo, timer=timer)
        self._active = exchange
        return exchange

    def abort(self) -> None:
        """中止当前进行中的对话（若有）。"""

        if self._active is not None:
            self._active.abort()

    @staticmethod
    def _open_stream(
        client: httpx.Client,
        request: httpx.Request,
        deadline: Optional[float],
        cancel: CancelToken,
    ) -> httpx.Response:
        """发送请求并等待响应头，等待时间不超过 deadline。

        超时后抛出 RequestTimeoutError，迟到的响应在后台线程里关闭。
        """

        if not deadline:
            return client.send(request, stream=True)
        pending = _HEADER_POOL.submit(client.send, request, stream=True)
        try:
            return pending.result(timeout=deadline)
        except FutureTimeoutError:
            if cancel.cancel("timeout"):
                logger.warning("chat_transport.timeout", extra={"extra": {"timeout": deadline, "phase": "headers"}})
            pending.add_done_callback(_close_late_response(client))
            raise RequestTimeoutError()

    @staticmethod
    def _cleanup(client: httpx.Client, timer: Optional[threading.Timer]) -> None:
        if timer is not None:
            timer.cancel()
        client.close()
