from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
import time

from .config import load_config
from .models import Notice
from .notices import NoticeChannel
from .worker import BroadcastWorker, WorkerError, build_worker


notice_logger = logging.getLogger("tgcast.notices")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tgcast", description="Telegram subscription broadcaster (long-polling worker)")
    p.add_argument("--config", required=True, help="Path to JSON config file")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env TGCAST_LOG_LEVEL or INFO",
    )
    p.add_argument(
        "--status-interval",
        type=int,
        default=None,
        help="Daemon heartbeat interval seconds. Defaults to env TGCAST_STATUS_INTERVAL_SECONDS or 10. Set 0 to disable.",
    )
    p.add_argument("--send", metavar="TEXT", default=None, help="Broadcast TEXT to active subscribers and exit")
    p.add_argument(
        "--stdin",
        action="store_true",
        help="Daemon mode: broadcast every non-empty line read from stdin",
    )

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument("--once", action="store_true", help="Run one poll cycle and exit")
    mode.add_argument("--daemon", action="store_true", help="Run forever with poll interval")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _log_notice(notice: Notice) -> None:
    if notice.is_error:
        notice_logger.error("%s", notice.message)
    else:
        notice_logger.info("%s", notice.message)


def _flush_notices(notices: NoticeChannel) -> None:
    for notice in notices.drain():
        _log_notice(notice)


def _run_once(worker: BroadcastWorker, logger: logging.Logger) -> int:
    worker.load_subscribers()
    report = worker.poll_once()
    _flush_notices(worker.notices)
    logger.info(
        "once done: duration_ms=%d cursor=%d->%d updates=%d changed=%d subscribers=%d active=%d fetch_error=%s persist_error=%s",
        report.duration_ms,
        report.cursor_before,
        report.cursor_after,
        report.updates_fetched,
        report.subscriptions_changed,
        len(worker.subscribers),
        worker.subscribers.active_count(),
        report.fetch_error or "-",
        report.persist_error or "-",
    )
    return 0 if report.fetch_error is None else 1


def _run_send(worker: BroadcastWorker, text: str, logger: logging.Logger) -> int:
    worker.start()
    try:
        worker.wait_until_ready(timeout=30)
        try:
            report = worker.send(text)
        except WorkerError as e:
            logger.error("broadcast rejected: %s", e)
            return 1
        logger.info(
            "broadcast done: attempted=%d delivered=%d failed=%d",
            report.attempted,
            report.delivered,
            report.failed,
        )
        return 0 if report.failed == 0 else 1
    finally:
        worker.stop()
        _flush_notices(worker.notices)


def _stdin_broadcast_loop(worker: BroadcastWorker, logger: logging.Logger) -> None:
    worker.wait_until_ready()
    for line in sys.stdin:
        text = line.strip()
        if not text:
            continue
        try:
            report = worker.send(text)
        except WorkerError as e:
            logger.warning("broadcast rejected: %s", e)
            continue
        logger.info(
            "broadcast done: attempted=%d delivered=%d failed=%d",
            report.attempted,
            report.delivered,
            report.failed,
        )
    logger.info("stdin closed; no more broadcasts will be read")


def _run_daemon(
    worker: BroadcastWorker,
    *,
    status_interval: int,
    read_stdin: bool,
    logger: logging.Logger,
) -> int:
    worker.start()
    if read_stdin:
        threading.Thread(
            target=_stdin_broadcast_loop,
            args=(worker, logger),
            name="tgcast-stdin",
            daemon=True,
        ).start()

    next_heartbeat_at = time.monotonic() + status_interval if status_interval > 0 else float("inf")
    try:
        while True:
            now = time.monotonic()
            if now >= next_heartbeat_at:
                logger.info(
                    "daemon alive: cursor=%d subscribers=%d active=%d notices_dropped=%d",
                    worker.cursor,
                    len(worker.subscribers),
                    worker.subscribers.active_count(),
                    worker.notices.dropped,
                )
                next_heartbeat_at = now + status_interval

            wait_s = min(1.0, max(0.2, next_heartbeat_at - now))
            notice = worker.notices.get(timeout=wait_s)
            if notice is not None:
                _log_notice(notice)
    except KeyboardInterrupt:
        logger.info("interrupted; stopping worker")
    finally:
        if worker.is_running:
            worker.stop()
        if not worker.join(timeout=worker.poll_interval_seconds + 30):
            logger.warning("poll thread did not exit in time")
        _flush_notices(worker.notices)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    env_log_level = os.environ.get("TGCAST_LOG_LEVEL")
    log_level = _resolve_log_level(args.log_level or env_log_level)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("tgcast")

    try:
        config = load_config(args.config)
        worker = build_worker(config)
    except (OSError, ValueError) as e:
        logger.error("startup failed: %s", e)
        return 2

    status_interval = args.status_interval
    if status_interval is None:
        try:
            status_interval = int(os.environ.get("TGCAST_STATUS_INTERVAL_SECONDS") or 10)
        except ValueError:
            status_interval = 10
    status_interval = max(0, int(status_interval))

    if args.send is not None:
        mode = "send"
    elif args.once:
        mode = "once"
    else:
        mode = "daemon"
    logger.info("tgcast start: mode=%s config=%s", mode, args.config)
    logger.info(
        "config: poll_interval_seconds=%s state_backend=%s state_path=%s long_poll_timeout_seconds=%d require_active_subscriber=%s",
        config.poll_interval_seconds,
        config.state.backend,
        config.state.path,
        config.telegram.long_poll_timeout_seconds,
        config.require_active_subscriber,
    )

    if mode == "send":
        return _run_send(worker, args.send, logger)
    if mode == "once":
        return _run_once(worker, logger)
    return _run_daemon(worker, status_interval=status_interval, read_stdin=args.stdin, logger=logger)


if __name__ == "__main__":
    raise SystemExit(main())
