from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping


INFO = "info"
ERROR = "error"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_dict(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True, slots=True)
class ChatUpdate:
    """
    统一的入站事件模型：Telegram getUpdates 返回的一条 update 归一到该结构。

    约定：
    - update_id 决定 cursor 推进（offset = max(offset, update_id + 1)）
    - command 取自 message.text 原文，命令解析由 subscriptions 负责
    - chat_id 缺失（如非 message 类型的 update）时为 None，不会触发订阅变更
    """

    update_id: int
    command: str
    chat_id: int | None
    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_api(cls, obj: Mapping[str, Any]) -> ChatUpdate:
        update_id = _as_int(obj.get("update_id"))
        if update_id is None:
            raise ValueError(f"update without integer update_id: {obj!r}")

        message = _as_dict(obj.get("message"))
        chat = _as_dict(message.get("chat"))
        sender = _as_dict(message.get("from"))
        return cls(
            update_id=update_id,
            command=_as_str(message.get("text")),
            chat_id=_as_int(chat.get("id")),
            first_name=_as_str(sender.get("first_name")),
            last_name=_as_str(sender.get("last_name")),
        )


@dataclass(frozen=True, slots=True)
class FetchResult:
    """
    一次 getUpdates 的结果。

    ok=False 表示远端在响应体中返回了业务失败（error_code/description），
    与网络层失败（TransportError）区分开。
    """

    ok: bool
    updates: tuple[ChatUpdate, ...] = ()
    error_code: int | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class SendResult:
    ok: bool
    message_id: int | None = None
    error_code: int | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Notice:
    """
    worker 向嵌入方输出的单向通知：kind 为 "info" 或 "error"。
    """

    kind: str
    message: str
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_error(self) -> bool:
        return self.kind == ERROR
