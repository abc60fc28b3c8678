"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 UI 层做统一捕获与用户提示。

分类：
- UnauthenticatedError: 没有登录令牌，用户可自行修复，不重试。
- RequestTimeoutError: 超过整轮对话的截止时间，可重试，UI 需要区别展示。
- TransportError: 非 2xx 响应或网络故障，尽量透出后端返回的错误信息。
流解码中的坏行只记录日志（DecodeWarning），不会抛出异常；
ActionExtractor 没有错误路径。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "UNAUTHENTICATED"）。
        message: 用户可读错误信息。
        http_status: 对应的 HTTP 状态码，默认 400。
        extra: 其他补充字段（例如 session_id、url 等）。
    """

    retryable = False

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class UnauthenticatedError(BusinessError):
    """身份提供方没有返回令牌，或后端返回 401。"""

    def __init__(self, message: str = "Not authenticated", **extra):
        super().__init__(code="UNAUTHENTICATED", message=message, http_status=401, **extra)


class RequestTimeoutError(BusinessError):
    """请求在截止时间内没有完成。"""

    retryable = True

    def __init__(self, message: str = "Request timed out", **extra):
        super().__init__(code="TIMEOUT", message=message, http_status=408, **extra)


class TransportError(BusinessError):
    """传输层错误基类。"""


class NetworkError(TransportError):
    """网络层错误，例如连接失败、连接被重置等。"""

    retryable = True


class ApiError(TransportError):
    """后端返回非 2xx 时抛出。"""


class AuthorizationError(ApiError):
    """调用方无权操作该资源（例如删除别人的会话）。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ConversationBusyError(BusinessError):
    """当前对话仍有一轮交互未结束。"""


class StoreError(BusinessError):
    """本地存储读写失败。"""
