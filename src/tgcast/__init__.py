"""
Telegram subscription broadcaster (tgcast)

v0 的目标是通过长轮询 getUpdates 维护一份订阅列表（/start 订阅、/stop 退订），
并向所有仍处于订阅状态的会话广播文本消息，把无状态的聊天 API 变成
“通知一组关心方”的有状态能力，供嵌入方调用。
"""

from .models import ChatUpdate, Notice
from .notices import NoticeChannel
from .worker import (
    AlreadyStartedError,
    AlreadyStoppedError,
    BroadcastReport,
    BroadcastWorker,
    NoSubscribersError,
    NotStartedError,
    PollReport,
    WorkerError,
    build_worker,
)

__all__ = [
    "AlreadyStartedError",
    "AlreadyStoppedError",
    "BroadcastReport",
    "BroadcastWorker",
    "ChatUpdate",
    "NoSubscribersError",
    "NotStartedError",
    "Notice",
    "NoticeChannel",
    "PollReport",
    "WorkerError",
    "build_worker",
]
