from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .config import AppConfig
from .http_utils import HttpClient
from .notices import NoticeChannel
from .state.json_store import JsonFileSubscriberStore
from .state.sqlite_store import SqliteSubscriberStore
from .state.store import SubscriberStore
from .subscriptions import SubscriberRegistry
from .transport.base import EventTransport
from .transport.telegram import TelegramTransport


logger = logging.getLogger(__name__)


class WorkerError(RuntimeError):
    pass


class AlreadyStartedError(WorkerError):
    pass


class AlreadyStoppedError(WorkerError):
    pass


class NotStartedError(WorkerError):
    pass


class NoSubscribersError(WorkerError):
    pass


@dataclass(slots=True)
class PollReport:
    cursor_before: int
    cursor_after: int
    updates_fetched: int
    subscriptions_changed: int
    fetch_error: str | None
    persist_error: str | None
    duration_ms: int


@dataclass(slots=True)
class BroadcastReport:
    attempted: int
    delivered: int
    failed: int


def _describe(e: BaseException) -> str:
    return f"{type(e).__name__}: {e}"


class BroadcastWorker:
    """
    核心执行器：维护订阅列表并提供广播能力。

    数据流：
    - 轮询线程：sleep -> getUpdates(offset) -> 订阅状态机 -> 推进 offset -> 持久化
    - 广播：send(text) 持有订阅锁，逐个向 active 会话 sendMessage

    失败语义：
    - start/stop 误用、send 前置条件不满足：同步抛 WorkerError 子类
    - 网络/远端/持久化失败：只产生 error 通知，轮询继续；只有 stop() 能结束循环
    """

    def __init__(
        self,
        transport: EventTransport,
        store: SubscriberStore,
        *,
        poll_interval_seconds: float = 1.0,
        notices: NoticeChannel | None = None,
        require_active_subscriber: bool = False,
        bot_username: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval_seconds < 0:
            raise ValueError(f"poll_interval_seconds must be >= 0, got {poll_interval_seconds}")
        self.transport = transport
        self.store = store
        self.poll_interval_seconds = poll_interval_seconds
        self.notices = notices if notices is not None else NoticeChannel()
        self.require_active_subscriber = require_active_subscriber
        self.subscribers = SubscriberRegistry(bot_username=bot_username)

        self._sleep = sleep
        self._cursor = 0
        self._running = False
        self._state_lock = threading.Lock()
        # 串行化轮询与启动加载：加载不能夹在另一个周期的“应用 update”与“持久化”之间
        self._poll_lock = threading.Lock()
        # 同一时刻只有一个轮询线程在跑：stop 后立即 start，新线程等旧线程走完（含 "bot is stopped"）
        self._run_lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._ready: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    @property
    def cursor(self) -> int:
        return self._cursor

    def start(self) -> None:
        """
        启动轮询线程后立即返回。

        线程内依次：等待上一轮线程退出 -> 发出 "bot is started" -> 加载订阅（失败只发 error 通知）-> 进入循环。
        Running 状态在此处同步置位，两个并发的 start() 只有一个能成功。
        """
        with self._state_lock:
            if self._running:
                raise AlreadyStartedError("worker is already started")
            self._running = True
            stop_event = threading.Event()
            ready = threading.Event()
            self._stop_event = stop_event
            self._ready = ready
            thread = threading.Thread(
                target=self._run,
                args=(stop_event, ready),
                name="tgcast-poll",
                daemon=True,
            )
            self._thread = thread
        thread.start()

    def stop(self) -> None:
        """
        置为 Stopped 并返回；不打断正在进行的 sleep 或网络请求，循环在醒来后自行退出。
        """
        with self._state_lock:
            if not self._running:
                raise AlreadyStoppedError("worker is already stopped")
            self._running = False
            if self._stop_event is not None:
                self._stop_event.set()

    def join(self, timeout: float | None = None) -> bool:
        """
        等待最近一次 start() 的线程退出。

        各轮线程按 start() 顺序串行执行，最新的线程结束时更早的线程必然已经结束。
        """
        with self._state_lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """等待最近一次 start() 的轮询线程完成启动时的订阅加载。"""
        with self._state_lock:
            ready = self._ready
        if ready is None:
            return False
        return ready.wait(timeout)

    def _run(self, stop_event: threading.Event, ready: threading.Event) -> None:
        with self._run_lock:
            self.notices.info("bot is started")
            with self._poll_lock:
                self.load_subscribers()
            ready.set()

            while True:
                self._sleep(self.poll_interval_seconds)
                if stop_event.is_set():
                    break
                try:
                    self.poll_once()
                except Exception as e:  # noqa: BLE001
                    logger.exception("poll cycle crashed: cursor=%d", self._cursor)
                    self.notices.error(f"poll cycle crashed: {_describe(e)}")

            self.notices.info("bot is stopped")

    def load_subscribers(self) -> bool:
        """
        从持久化存储加载订阅并合并进内存；失败时发 error 通知并保留当前内存状态。

        合并而非替换：内存里已应用、尚未落盘的变更不会被较旧的磁盘内容覆盖。
        """
        try:
            loaded = self.store.load()
        except Exception as e:  # noqa: BLE001
            self.notices.error(f"loading subscribers failed: {_describe(e)}")
            return False
        self.subscribers.merge(loaded)
        logger.debug(
            "subscribers loaded: total=%d active=%d",
            len(self.subscribers),
            self.subscribers.active_count(),
        )
        return True

    def poll_once(self) -> PollReport:
        """
        执行一个轮询周期（单次）。

        执行顺序：
        - 以当前 offset 拉取 updates；失败/远端报错只发通知，offset 不动
        - 持锁逐条：状态机 -> info 通知 -> offset = max(offset, update_id + 1)
        - 释放锁后持久化锁内取得的快照
        """
        with self._poll_lock:
            start_t = time.monotonic()
            cursor_before = self._cursor

            def _report(fetched: int, changed: int, fetch_error: str | None, persist_error: str | None) -> PollReport:
                return PollReport(
                    cursor_before=cursor_before,
                    cursor_after=self._cursor,
                    updates_fetched=fetched,
                    subscriptions_changed=changed,
                    fetch_error=fetch_error,
                    persist_error=persist_error,
                    duration_ms=int((time.monotonic() - start_t) * 1000),
                )

            try:
                result = self.transport.fetch_updates(cursor_before)
            except Exception as e:  # noqa: BLE001
                error = _describe(e)
                self.notices.error(f"getting updates failed: {error}")
                return _report(0, 0, error, None)

            if not result.ok:
                error = f"getting updates failed error code: {result.error_code} description: {result.description}"
                self.notices.error(error)
                return _report(0, 0, error, None)

            updates = result.updates
            if not updates:
                return _report(0, 0, None, None)

            changed = 0
            with self.subscribers.locked() as registry:
                for update in updates:
                    if registry.apply(update):
                        changed += 1
                    self.notices.info(
                        f"{update.command} command received from chat id: {update.chat_id} "
                        f"first name: {update.first_name} last name: {update.last_name}"
                    )
                    self._cursor = max(self._cursor, update.update_id + 1)
                snapshot = registry.snapshot()

            persist_error: str | None = None
            try:
                self.store.save(snapshot)
            except Exception as e:  # noqa: BLE001
                persist_error = _describe(e)
                self.notices.error(f"saving subscribers failed: {persist_error}")

            logger.debug(
                "poll done: cursor %d -> %d updates=%d changed=%d",
                cursor_before,
                self._cursor,
                len(updates),
                changed,
            )
            return _report(len(updates), changed, None, persist_error)

    def send(self, text: str) -> BroadcastReport:
        """
        向所有 active 会话广播一条文本消息。

        前置条件（在任何网络请求之前检查）：
        - worker 处于 Running，否则 NotStartedError
        - 订阅映射非空（require_active_subscriber=True 时要求至少一个 active），否则 NoSubscribersError

        整轮广播持有订阅锁；单个会话发送失败只发 error 通知，不中断其余发送，也不向调用方汇总报错。
        """
        if not self.is_running:
            raise NotStartedError("worker is not started")

        attempted = 0
        delivered = 0
        failed = 0
        with self.subscribers.locked() as registry:
            if self.require_active_subscriber:
                if registry.active_count() == 0:
                    raise NoSubscribersError("worker doesn't have any active subscribers")
            elif len(registry) == 0:
                raise NoSubscribersError("worker doesn't have any subscribers")

            for chat_id in registry.active_ids():
                attempted += 1
                try:
                    r = self.transport.send_message(chat_id, text)
                except Exception as e:  # noqa: BLE001
                    failed += 1
                    self.notices.error(f"sending message failed to chat id: {chat_id} error: {_describe(e)}")
                    continue
                if not r.ok:
                    failed += 1
                    self.notices.error(
                        f"sending message failed to chat id: {chat_id} "
                        f"error code: {r.error_code} description: {r.description}"
                    )
                    continue
                delivered += 1

        return BroadcastReport(attempted=attempted, delivered=delivered, failed=failed)


def build_worker(config: AppConfig) -> BroadcastWorker:
    """
    根据配置构建可运行的 BroadcastWorker。

    设计取舍（v0）：
    - 统一在这里做“配置 -> 实例”的装配，worker 内只关注轮询与广播
    - bot token 只通过环境变量读取，缺失时直接报错
    """
    token = config.resolve_env(config.telegram.token_env)
    if not token:
        raise ValueError(f"Telegram bot token is not set: env {config.telegram.token_env} is empty")

    http = HttpClient(timeout_seconds=config.telegram.request_timeout_seconds)
    transport = TelegramTransport(
        token=token,
        http=http,
        api_base_url=config.telegram.api_base_url,
        long_poll_timeout_seconds=config.telegram.long_poll_timeout_seconds,
    )

    store: SubscriberStore
    if config.state.backend == "sqlite":
        store = SqliteSubscriberStore(config.state.path)
    else:
        store = JsonFileSubscriberStore(config.state.path)

    return BroadcastWorker(
        transport=transport,
        store=store,
        poll_interval_seconds=config.poll_interval_seconds,
        notices=NoticeChannel(maxsize=config.notice_buffer_size),
        require_active_subscriber=config.require_active_subscriber,
        bot_username=config.telegram.bot_username,
    )
