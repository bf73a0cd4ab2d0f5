import json
import os
import sys
import tempfile
import unittest


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


from tgcast.config import load_config  # noqa: E402
from tgcast.models import ChatUpdate  # noqa: E402
from tgcast.state.json_store import JsonFileSubscriberStore  # noqa: E402
from tgcast.state.sqlite_store import SqliteSubscriberStore  # noqa: E402
from tgcast.transport.telegram import TelegramTransport  # noqa: E402
from tgcast.worker import build_worker  # noqa: E402


def _write(td: str, cfg: dict) -> str:
    path = os.path.join(td, "config.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(cfg, f, ensure_ascii=False)
    return path


class TestConfigAndBuild(unittest.TestCase):
    def test_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            config = load_config(_write(td, {}))

        self.assertEqual(config.poll_interval_seconds, 1.0)
        self.assertEqual(config.telegram.token_env, "TELEGRAM_BOT_TOKEN")
        self.assertEqual(config.telegram.api_base_url, "https://api.telegram.org")
        self.assertEqual(config.telegram.long_poll_timeout_seconds, 0)
        self.assertEqual(config.state.backend, "json")
        self.assertEqual(config.state.path, "./chats.json")
        self.assertEqual(config.notice_buffer_size, 1000)
        self.assertFalse(config.require_active_subscriber)
        self.assertIsNone(config.telegram.bot_username)

    def test_load_config_parses_sections(self) -> None:
        cfg = {
            "poll_interval_seconds": 0.5,
            "telegram": {"token_env": "MY_BOT", "long_poll_timeout_seconds": 25, "request_timeout_seconds": 35},
            "state": {"backend": "sqlite"},
            "notices": {"buffer_size": 10},
            "broadcast": {"require_active_subscriber": True},
        }
        with tempfile.TemporaryDirectory() as td:
            config = load_config(_write(td, cfg))

        self.assertEqual(config.poll_interval_seconds, 0.5)
        self.assertEqual(config.telegram.token_env, "MY_BOT")
        self.assertEqual(config.telegram.long_poll_timeout_seconds, 25)
        self.assertEqual(config.telegram.request_timeout_seconds, 35.0)
        self.assertEqual(config.state.backend, "sqlite")
        self.assertEqual(config.state.path, "./tgcast_state.sqlite3")
        self.assertEqual(config.notice_buffer_size, 10)
        self.assertTrue(config.require_active_subscriber)

    def test_unknown_backend_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = _write(td, {"state": {"backend": "redis"}})
            with self.assertRaises(ValueError):
                load_config(path)

    def test_non_object_section_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = _write(td, {"telegram": ["x"]})
            with self.assertRaises(ValueError):
                load_config(path)

    def test_build_worker_wires_transport_and_store(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = {
                "telegram": {"token_env": "TGCAST_TEST_TOKEN"},
                "state": {"backend": "sqlite", "path": os.path.join(td, "s.sqlite3")},
                "notices": {"buffer_size": 5},
            }
            config = load_config(_write(td, cfg))
            os.environ["TGCAST_TEST_TOKEN"] = "1:abc"
            try:
                worker = build_worker(config)
            finally:
                os.environ.pop("TGCAST_TEST_TOKEN", None)

        self.assertIsInstance(worker.transport, TelegramTransport)
        self.assertEqual(worker.transport.token, "1:abc")
        self.assertIsInstance(worker.store, SqliteSubscriberStore)
        self.assertEqual(worker.notices.maxsize, 5)
        self.assertFalse(worker.is_running)

    def test_build_worker_defaults_to_json_store(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            config = load_config(_write(td, {"telegram": {"token_env": "TGCAST_TEST_TOKEN"}}))
            os.environ["TGCAST_TEST_TOKEN"] = "1:abc"
            try:
                worker = build_worker(config)
            finally:
                os.environ.pop("TGCAST_TEST_TOKEN", None)

        self.assertIsInstance(worker.store, JsonFileSubscriberStore)

    def test_build_worker_requires_token(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            config = load_config(_write(td, {"telegram": {"token_env": "TGCAST_MISSING_TOKEN"}}))
        os.environ.pop("TGCAST_MISSING_TOKEN", None)
        with self.assertRaises(ValueError):
            build_worker(config)

    def test_bot_username_reaches_worker(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = {"telegram": {"token_env": "TGCAST_TEST_TOKEN", "bot_username": "@my_bot"}}
            config = load_config(_write(td, cfg))
            os.environ["TGCAST_TEST_TOKEN"] = "1:abc"
            try:
                worker = build_worker(config)
            finally:
                os.environ.pop("TGCAST_TEST_TOKEN", None)

        self.assertEqual(config.telegram.bot_username, "my_bot")
        update = ChatUpdate(update_id=1, command="/start@my_bot", chat_id=-100)
        self.assertTrue(worker.subscribers.apply(update))
        self.assertIs(worker.subscribers.get(-100), True)
