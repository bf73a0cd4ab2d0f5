from __future__ import annotations

from typing import Mapping, Protocol


class SubscriberStore(Protocol):
    """
    订阅状态持久化接口：chat_id -> active。

    约定：
    - load/save 失败直接抛异常，由 worker 捕获并转为 error 通知（不中断轮询）
    - active=False 的条目同样需要保存：它记录的是“已知会话 + 当前授权状态”，而不只是活跃集合
    """

    def load(self) -> dict[int, bool]: ...

    def save(self, subscribers: Mapping[int, bool]) -> None: ...
