from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping


STATE_BACKENDS = ("json", "sqlite")


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"Expected object at {where}, got {type(value)}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    return bool(v)


def _get_int(d: Mapping[str, Any], key: str, default: int) -> int:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return int(v)
    except Exception:
        return default


def _get_float(d: Mapping[str, Any], key: str, default: float) -> float:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return float(v)
    except Exception:
        return default


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


@dataclass(frozen=True, slots=True)
class TelegramConfig:
    """
    Telegram Bot API 配置。

    token_env:
      - bot token 的环境变量名（token 只从环境变量读取，不落盘到配置文件）
    api_base_url:
      - Bot API 地址，测试或自建 Bot API server 时可替换
    long_poll_timeout_seconds:
      - getUpdates 的服务端挂起时间，0 表示短轮询
    request_timeout_seconds:
      - 单次 HTTP 请求超时，必须大于 long_poll_timeout_seconds
    bot_username:
      - 可选；设置后群聊中的 "/start@<bot_username>" 也按 "/start" 处理，默认关闭（命令精确匹配）
    """

    token_env: str = "TELEGRAM_BOT_TOKEN"
    api_base_url: str = "https://api.telegram.org"
    long_poll_timeout_seconds: int = 0
    request_timeout_seconds: float = 20.0
    bot_username: str | None = None


@dataclass(frozen=True, slots=True)
class StateConfig:
    """
    订阅状态持久化配置。

    backend:
      - "json"：单个 JSON 文件（默认 ./chats.json）
      - "sqlite"：SQLite 表 subscribers
    """

    backend: str = "json"
    path: str = "./chats.json"


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置（v0 版本）。

    poll_interval_seconds:
      - 两次 getUpdates 之间的固定间隔
    notice_buffer_size:
      - 通知通道的缓冲上限，满了丢弃最旧的一条
    require_active_subscriber:
      - send 的前置检查是否要求至少一个 active 会话（默认只要求映射非空）
    """

    poll_interval_seconds: float
    telegram: TelegramConfig
    state: StateConfig
    notice_buffer_size: int = 1000
    require_active_subscriber: bool = False

    def resolve_env(self, env_name: str | None) -> str | None:
        if not env_name:
            return None
        return os.environ.get(env_name)


def load_config(config_path: str) -> AppConfig:
    """
    v0 约定：使用 JSON 作为配置落地形式，避免引入第三方 YAML 解析依赖。

    JSON 顶层结构（示意）：
    {
      "poll_interval_seconds": 1.0,
      "telegram": { "token_env": "TELEGRAM_BOT_TOKEN" },
      "state": { "backend": "json", "path": "./chats.json" },
      "notices": { "buffer_size": 1000 },
      "broadcast": { "require_active_subscriber": false }
    }
    """
    with open(config_path, "rb") as f:
        raw = json.loads(f.read().decode("utf-8"))

    root = _require_dict(raw, where="$")
    poll_interval_seconds = max(0.0, _get_float(root, "poll_interval_seconds", 1.0))

    tg = _require_dict(root.get("telegram", {}), where="$.telegram")
    telegram_cfg = TelegramConfig(
        token_env=_get_str(tg, "token_env", None) or "TELEGRAM_BOT_TOKEN",
        api_base_url=_get_str(tg, "api_base_url", None) or "https://api.telegram.org",
        long_poll_timeout_seconds=max(0, _get_int(tg, "long_poll_timeout_seconds", 0)),
        request_timeout_seconds=_get_float(tg, "request_timeout_seconds", 20.0),
        bot_username=(_get_str(tg, "bot_username", None) or "").strip().lstrip("@") or None,
    )

    st = _require_dict(root.get("state", {}), where="$.state")
    backend = (_get_str(st, "backend", None) or "json").strip().lower()
    if backend not in STATE_BACKENDS:
        raise ValueError(f"Unknown state backend at $.state.backend: {backend!r}")
    default_path = "./chats.json" if backend == "json" else "./tgcast_state.sqlite3"
    state_cfg = StateConfig(backend=backend, path=_get_str(st, "path", None) or default_path)

    notices = _require_dict(root.get("notices", {}), where="$.notices")
    broadcast = _require_dict(root.get("broadcast", {}), where="$.broadcast")

    return AppConfig(
        poll_interval_seconds=poll_interval_seconds,
        telegram=telegram_cfg,
        state=state_cfg,
        notice_buffer_size=max(1, _get_int(notices, "buffer_size", 1000)),
        require_active_subscriber=_get_bool(broadcast, "require_active_subscriber", False),
    )
