"""服务端事件流（SSE）解码器。

把后端返回的原始字节流转成惰性的 StreamChunk 序列：

1. 字节按 UTF-8 增量解码，多字节字符被拆在两次读取之间也不会损坏。
2. 按 ``\\n`` 切行，末尾不完整的行保留到下一次读取，绝不提前解析。
3. 只处理 ``data:`` 开头的行；``data: [DONE]`` 直接结束序列，不产出片段。
4. JSON 解析失败、不是对象或类型未知的行记一条 warning 后跳过
   （厂商的 keep-alive 噪音之类）。

序列只能消费一次。无论正常结束、消费方提前放弃（generator.close()）
还是出错，都会通过 try/finally 调用一次 on_close 释放底层连接。
"""

import codecs
import json
import threading
from typing import Callable, Iterable, Iterator, Optional

from auri_core.domain.exceptions import RequestTimeoutError
from auri_core.domain.models import StreamChunk, chunk_from_payload
from auri_core.infrastructure.logging.logger import logger

DONE_SENTINEL = "[DONE]"


class CancelToken:
    """调用方取消或截止时间触发的取消标记。

    reason 为 "abort" 时序列静默结束；为 "timeout" 时抛出 RequestTimeoutError。
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "abort") -> bool:
        """置位取消标记，只有第一次调用生效，返回是否本次生效。"""

        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def timed_out(self) -> bool:
        return self.cancelled and self.reason == "timeout"


def _check_cancel(cancel: Optional[CancelToken]) -> bool:
    """返回 True 表示应静默结束；超时直接抛异常。"""

    if cancel is None or not cancel.cancelled:
        return False
    if cancel.timed_out:
        raise RequestTimeoutError()
    return True


def parse_event_line(line: str) -> Optional[StreamChunk]:
    """解析单行事件。非 data 行、坏 JSON 返回 None；[DONE] 由调用方处理。"""

    line = line.rstrip("\r")
    if not line.startswith("data:"):
        return None
    data_str = line[5:].strip()
    if not data_str:
        return None
    try:
        payload = json.loads(data_str)
    except json.JSONDecodeError:
        logger.warning("sse.decode_warning", extra={"extra": {"reason": "invalid_json", "line": data_str[:200]}})
        return None
    if not isinstance(payload, dict):
        logger.warning("sse.decode_warning", extra={"extra": {"reason": "not_an_object", "line": data_str[:200]}})
        return None
    chunk = chunk_from_payload(payload)
    if chunk is None:
        kind = payload.get("type")
        reason = "missing_session_id" if kind == "session" else "unknown_type"
        logger.warning("sse.decode_warning", extra={"extra": {"reason": reason, "type": kind}})
    return chunk


def _is_done(line: str) -> bool:
    line = line.rstrip("\r")
    return line.startswith("data:") and line[5:].strip() == DONE_SENTINEL


def iter_stream_chunks(
    raw: Iterable[bytes],
    *,
    cancel: Optional[CancelToken] = None,
    on_close: Optional[Callable[[], None]] = None,
) -> Iterator[StreamChunk]:
    """逐步 yield StreamChunk。

    Args:
        raw: 原始字节块，例如 ``httpx.Response.iter_bytes()``。
        cancel: 取消标记，每次读取之后、每次 yield 之前检查。
        on_close: 序列结束时调用一次，用于关闭响应。
    """

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    try:
        for data in raw:
            if _check_cancel(cancel):
                return
            buffer += decoder.decode(data)
            lines = buffer.split("\n")
            buffer = lines.pop()
            for line in lines:
                if _is_done(line):
                    return
                chunk = parse_event_line(line)
                if chunk is None:
                    continue
                if _check_cancel(cancel):
                    return
                yield chunk
        if _check_cancel(cancel):
            return
        buffer += decoder.decode(b"", final=True)
        if buffer and not _is_done(buffer):
            chunk = parse_event_line(buffer)
            if chunk is not None:
                yield chunk
    finally:
        if on_close is not None:
            on_close()
