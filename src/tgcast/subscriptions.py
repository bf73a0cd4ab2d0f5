from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Mapping, MutableMapping

from .models import ChatUpdate


START_COMMAND = "/start"
STOP_COMMAND = "/stop"


def normalize_command(text: str, bot_username: str | None = None) -> str:
    """
    命令按消息原文精确匹配。

    配置了 bot_username 时，只去掉恰好等于 "@<bot_username>" 的后缀（群聊里的 "/start@my_bot"）；
    其余文本一律原样比较，"/start ref" 不算 /start。
    """
    if bot_username:
        suffix = "@" + bot_username.lstrip("@")
        if text.startswith("/") and text.endswith(suffix):
            return text[: -len(suffix)]
    return text


def apply_command(
    subscribers: MutableMapping[int, bool],
    update: ChatUpdate,
    bot_username: str | None = None,
) -> bool:
    """
    订阅状态机：/start -> active=True，/stop -> active=False，其余命令不改变状态。

    返回映射是否真的发生了变化。/stop 只置 False，不删除条目。
    """
    if update.chat_id is None:
        return False

    command = normalize_command(update.command, bot_username)
    if command == START_COMMAND:
        active = True
    elif command == STOP_COMMAND:
        active = False
    else:
        return False

    changed = subscribers.get(update.chat_id) is not active
    subscribers[update.chat_id] = active
    return changed


class SubscriberRegistry:
    """
    带锁的订阅映射容器（轮询线程写、广播调用方读）。

    所有读写都经过同一把 RLock；需要把多步操作作为一个整体时（批量应用 update、
    整轮广播），用 locked() 持锁，期间再调用其它方法会重入同一把锁。
    内部 dict 不对外暴露，对外只给拷贝。
    """

    def __init__(self, initial: Mapping[int, bool] | None = None, *, bot_username: str | None = None) -> None:
        self._lock = threading.RLock()
        self._subscribers: dict[int, bool] = dict(initial or {})
        self._bot_username = bot_username

    @contextmanager
    def locked(self) -> Iterator[SubscriberRegistry]:
        with self._lock:
            yield self

    def apply(self, update: ChatUpdate) -> bool:
        with self._lock:
            return apply_command(self._subscribers, update, self._bot_username)

    def merge(self, subscribers: Mapping[int, bool]) -> None:
        """
        把持久化的映射合并进内存：同一 chat_id 以传入值为准，只在内存中的条目保留。
        """
        with self._lock:
            for chat_id, active in subscribers.items():
                self._subscribers[int(chat_id)] = bool(active)

    def snapshot(self) -> dict[int, bool]:
        with self._lock:
            return dict(self._subscribers)

    def get(self, chat_id: int) -> bool | None:
        with self._lock:
            return self._subscribers.get(chat_id)

    def active_ids(self) -> list[int]:
        with self._lock:
            return [chat_id for chat_id, active in self._subscribers.items() if active]

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for active in self._subscribers.values() if active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
