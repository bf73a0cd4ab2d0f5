from __future__ import annotations

from typing import Protocol

from ..models import FetchResult, SendResult


class TransportError(RuntimeError):
    """
    网络层失败：连接/超时/响应无法解析等。

    远端业务失败（响应体 ok=false）不抛该异常，而是以 ok=False 的结果返回。
    """


class EventTransport(Protocol):
    """
    远端推送服务接口：按 offset 拉取增量 update，并向单个会话发送文本消息。

    v0 约定：
    - fetch_updates 返回的 updates 按 update_id 递增排列（由远端保证，核心不校验）
    - 网络层失败抛 TransportError，由 worker 统一捕获并转为 error 通知
    """

    def fetch_updates(self, offset: int) -> FetchResult: ...

    def send_message(self, chat_id: int, text: str) -> SendResult: ...
