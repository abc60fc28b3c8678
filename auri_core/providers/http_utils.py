"""ChatTransport 与 SessionStoreClient 共用的 HTTP 辅助函数。"""

from typing import Any, Dict, Optional

import httpx

from auri_core.domain.conversation import IdentityProvider
from auri_core.domain.exceptions import (
    ApiError,
    AuthorizationError,
    UnauthenticatedError,
)


def auth_headers(identity: IdentityProvider, *, json_body: bool = False) -> Dict[str, str]:
    """每次调用都重新读取令牌；没有令牌直接抛 UnauthenticatedError，不发请求。"""

    token = identity.get_current_auth_token()
    if not token:
        raise UnauthenticatedError()
    headers = {"Authorization": f"Bearer {token}"}
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


def backend_error_message(response: httpx.Response) -> Optional[str]:
    """尝试从错误响应体中取出 error/message 字段。"""

    try:
        data: Any = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:500] or None
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if message:
            return str(message)
    return None


def raise_for_backend_error(response: httpx.Response, *, missing_is_forbidden: bool = False, **extra) -> None:
    """把非 2xx 响应转换成统一的业务异常。

    - 401 -> UnauthenticatedError
    - 403 -> AuthorizationError；missing_is_forbidden 时 404 也算
      （后端按行级所有权过滤，别人的资源表现为不存在）
    - 其他 -> ApiError
    后端给了错误信息就原样透出，否则使用 "HTTP <status>"。
    """

    status = response.status_code
    if 200 <= status < 300:
        return
    message = backend_error_message(response) or f"HTTP {status}"
    if status == 401:
        raise UnauthenticatedError(message=message, **extra)
    if status == 403 or (missing_is_forbidden and status == 404):
        raise AuthorizationError(code="FORBIDDEN", message=message, http_status=status, **extra)
    raise ApiError(code="API_ERROR", message=message, http_status=status, **extra)
