import json
import os
import tempfile
import unittest

from tgcast.state.json_store import JsonFileSubscriberStore


class TestJsonFileSubscriberStore(unittest.TestCase):
    def test_missing_file_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            store = JsonFileSubscriberStore(os.path.join(td, "chats.json"))
            self.assertEqual(store.load(), {})

    def test_save_then_load_keeps_inactive_entries(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "nested", "chats.json")
            store = JsonFileSubscriberStore(path)
            store.save({42: True, 7: False})

            self.assertEqual(store.load(), {42: True, 7: False})
            with open(path, encoding="utf-8") as f:
                self.assertEqual(json.load(f), {"7": False, "42": True})
            self.assertEqual([n for n in os.listdir(os.path.dirname(path)) if n.endswith(".tmp")], [])

    def test_reads_legacy_chats_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "chats.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write('{"123456789":true,"-100200300":false}\n')

            store = JsonFileSubscriberStore(path)
            self.assertEqual(store.load(), {123456789: True, -100200300: False})

    def test_corrupted_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "chats.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertRaises(ValueError):
                JsonFileSubscriberStore(path).load()

    def test_wrong_shape_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "chats.json")
            for content in ('[1, 2]', '{"abc": true}', '{"1": "yes"}'):
                with open(path, "w", encoding="utf-8") as f:
                    f.write(content)
                with self.assertRaises(ValueError):
                    JsonFileSubscriberStore(path).load()
