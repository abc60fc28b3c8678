"""会话存储客户端。

对后端 /sessions 接口的薄封装：list / create / delete。
行级所有权由后端保证，本客户端只负责编解码，并原样透出后端错误信息。
"""

from typing import Any, List, Optional

import httpx

from auri_core.config.settings import Settings
from auri_core.domain.conversation import IdentityProvider
from auri_core.domain.exceptions import ApiError, NetworkError, RequestTimeoutError, ValidationError
from auri_core.domain.models import ConversationSession
from auri_core.infrastructure.logging.logger import logger
from auri_core.providers.http_utils import auth_headers, raise_for_backend_error


class SessionStoreClient:
    """当前登录用户的会话集合。"""

    def __init__(
        self,
        identity: IdentityProvider,
        settings: Settings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._identity = identity
        self._settings = settings
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._settings.api_base_url}{self._settings.sessions_path}"

    def list(self) -> List[ConversationSession]:
        """按创建时间倒序返回会话，最多 sessions_list_limit 条。"""

        resp = self._request("GET", auth_headers(self._identity))
        data = self._json(resp)
        items = [self._session(s, resp) for s in (data.get("sessions") or [])]
        items.sort(key=lambda s: s.created_at, reverse=True)
        return items[: self._settings.sessions_list_limit]

    def create(self, language_code: Optional[str] = None) -> ConversationSession:
        lang = language_code or self._settings.default_language
        resp = self._request("POST", auth_headers(self._identity, json_body=True), json={"lang": lang})
        data = self._json(resp)
        session = data.get("session")
        if not isinstance(session, dict):
            raise ApiError(code="API_ERROR", message="Malformed session response", http_status=resp.status_code)
        created = self._session(session, resp)
        logger.info("sessions.created", extra={"extra": {"session_id": created.id, "lang": lang}})
        return created

    def delete(self, session_id: str) -> None:
        """删除会话；删除不属于自己的会话会得到 AuthorizationError。"""

        if not session_id:
            raise ValidationError(code="VALIDATION_ERROR", message="session_id is required")
        self._request(
            "DELETE",
            auth_headers(self._identity),
            params={"session_id": session_id},
            missing_is_forbidden=True,
        )
        logger.info("sessions.deleted", extra={"extra": {"session_id": session_id}})

    def _request(
        self,
        method: str,
        headers: dict,
        *,
        missing_is_forbidden: bool = False,
        **kwargs,
    ) -> httpx.Response:
        try:
            with httpx.Client(
                timeout=self._settings.http_timeout,
                trust_env=False,
                transport=self._transport,
            ) as client:
                resp = client.request(method, self.url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(message=str(e) or "Request timed out")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if not resp.is_success:
            logger.warning(
                "sessions.request_failed",
                extra={"extra": {"method": method, "status": resp.status_code}},
            )
        raise_for_backend_error(resp, missing_is_forbidden=missing_is_forbidden, method=method)
        return resp

    @staticmethod
    def _session(payload: Any, resp: httpx.Response) -> ConversationSession:
        try:
            return ConversationSession.from_payload(payload)
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ApiError(code="API_ERROR", message="Malformed session response", http_status=resp.status_code)

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="API_ERROR", message="Invalid JSON from sessions endpoint", http_status=resp.status_code)
        if not isinstance(data, dict):
            raise ApiError(code="API_ERROR", message="Unexpected sessions payload", http_status=resp.status_code)
        return data
