from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库），供 Telegram transport 发起 JSON POST。

    约定：
    - 4xx/5xx 不抛异常，按普通响应返回（Bot API 在错误时同样返回 JSON 体）
    - 网络错误/超时直接抛出 urllib.error.URLError / TimeoutError，由调用方归类
    - 不做重试：失败后由轮询循环在下一个 tick 自然重试
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        user_agent: str = "tgcast/0",
        verify_ssl: bool = True,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent
        self._ssl_context = ssl.create_default_context() if verify_ssl else ssl._create_unverified_context()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        request_headers = {
            "User-Agent": self._user_agent,
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(dict(headers))

        data = json.dumps(dict(payload), ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(url=url, data=data, headers=request_headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout_seconds, context=self._ssl_context) as resp:  # noqa: S310
                return HttpResponse(
                    status=getattr(resp, "status", 200),
                    url=resp.geturl(),
                    headers={k: v for k, v in resp.headers.items()},
                    body=resp.read(),
                )
        except urllib.error.HTTPError as e:
            try:
                body = e.read()
            finally:
                e.close()
            return HttpResponse(
                status=e.code,
                url=url,
                headers={k: v for k, v in (e.headers or {}).items()},
                body=body or b"",
            )


def redact(text: str, secret: str | None, placeholder: str = "<redacted>") -> str:
    """
    从错误信息中抹掉敏感串（如 bot token），避免 token 经日志/通知外泄。
    """
    if not secret:
        return text
    return text.replace(secret, placeholder)
