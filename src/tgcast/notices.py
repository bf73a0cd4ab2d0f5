from __future__ import annotations

import threading
import time
from collections import deque

from .models import ERROR, INFO, Notice


class NoticeChannel:
    """
    worker -> 嵌入方的单向通知通道（有界缓冲）。

    v0 策略：
    - publish 永不阻塞；缓冲满时丢弃最旧的一条，并累计 dropped
    - 嵌入方可用 get(timeout) 逐条消费，或用 drain() 一次取空
    这样消费方变慢或缺席时，轮询线程也不会被卡住。
    """

    def __init__(self, maxsize: int = 1000) -> None:
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._items: deque[Notice] = deque()
        self._maxsize = maxsize
        self._cond = threading.Condition()
        self._dropped = 0
        self._published = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def dropped(self) -> int:
        with self._cond:
            return self._dropped

    @property
    def published(self) -> int:
        with self._cond:
            return self._published

    def publish(self, notice: Notice) -> None:
        with self._cond:
            if len(self._items) >= self._maxsize:
                self._items.popleft()
                self._dropped += 1
            self._items.append(notice)
            self._published += 1
            self._cond.notify()

    def info(self, message: str) -> None:
        self.publish(Notice(kind=INFO, message=message))

    def error(self, message: str) -> None:
        self.publish(Notice(kind=ERROR, message=message))

    def get(self, timeout: float | None = None) -> Notice | None:
        """
        取一条通知；timeout 内没有新通知时返回 None（timeout=None 表示一直等）。
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
            return self._items.popleft()

    def drain(self) -> list[Notice]:
        with self._cond:
            items = list(self._items)
            self._items.clear()
            return items

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)
