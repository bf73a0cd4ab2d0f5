from __future__ import annotations

import logging
import urllib.error
from dataclasses import dataclass
from typing import Any, Mapping

from ..http_utils import HttpClient, redact
from ..models import ChatUpdate, FetchResult, SendResult
from .base import TransportError


logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.telegram.org"


def _error_fields(data: Mapping[str, Any]) -> tuple[int | None, str | None]:
    code = data.get("error_code")
    if isinstance(code, bool) or not isinstance(code, int):
        code = None
    description = data.get("description")
    if description is not None:
        description = str(description)
    return code, description


@dataclass(slots=True)
class TelegramTransport:
    """
    Telegram Bot API 的 transport 实现（getUpdates / sendMessage）。

    说明：
    - 请求统一为 POST JSON：{api_base_url}/bot{token}/{method}
    - long_poll_timeout_seconds 为 0 时即普通短轮询；大于 0 时由服务端挂起请求，
      此时 HttpClient 的超时必须大于该值，否则每次长轮询都会以超时告终
    - token 只出现在 URL 中，任何错误信息都会先做脱敏
    """

    token: str
    http: HttpClient
    api_base_url: str = DEFAULT_API_BASE_URL
    long_poll_timeout_seconds: int = 0

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("Telegram bot token is empty")
        if self.long_poll_timeout_seconds < 0:
            raise ValueError("long_poll_timeout_seconds must be >= 0")
        if self.long_poll_timeout_seconds and self.http.timeout_seconds <= self.long_poll_timeout_seconds:
            raise ValueError(
                "HTTP timeout must exceed long_poll_timeout_seconds: "
                f"timeout={self.http.timeout_seconds} long_poll={self.long_poll_timeout_seconds}"
            )

    def _method_url(self, method: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/bot{self.token}/{method}"

    def _call(self, method: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        try:
            resp = self.http.post_json(self._method_url(method), payload)
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            reason = getattr(e, "reason", e)
            raise TransportError(redact(f"{method} request failed: {reason}", self.token)) from None

        try:
            data = resp.json()
        except ValueError:
            raise TransportError(
                redact(f"{method} invalid JSON response: status={resp.status} body={resp.text()[:200]!r}", self.token)
            ) from None
        if not isinstance(data, dict):
            raise TransportError(f"{method} expected JSON object, got {type(data).__name__}")

        logger.debug("%s -> status=%d ok=%r", method, resp.status, data.get("ok"))
        return data

    def fetch_updates(self, offset: int) -> FetchResult:
        payload: dict[str, Any] = {"offset": offset}
        if self.long_poll_timeout_seconds:
            payload["timeout"] = self.long_poll_timeout_seconds
        data = self._call("getUpdates", payload)

        if data.get("ok") is not True:
            code, description = _error_fields(data)
            return FetchResult(ok=False, error_code=code, description=description)

        result = data.get("result")
        if not isinstance(result, list):
            raise TransportError("getUpdates response is missing the result list")

        updates: list[ChatUpdate] = []
        for item in result:
            if not isinstance(item, dict):
                continue
            try:
                updates.append(ChatUpdate.from_api(item))
            except ValueError:
                logger.warning("skipping malformed update: %r", item)
        return FetchResult(ok=True, updates=tuple(updates))

    def send_message(self, chat_id: int, text: str) -> SendResult:
        data = self._call("sendMessage", {"chat_id": chat_id, "text": text})

        if data.get("ok") is not True:
            code, description = _error_fields(data)
            return SendResult(ok=False, error_code=code, description=description)

        message_id: int | None = None
        result = data.get("result")
        if isinstance(result, dict) and isinstance(result.get("message_id"), int):
            message_id = result["message_id"]
        return SendResult(ok=True, message_id=message_id)
