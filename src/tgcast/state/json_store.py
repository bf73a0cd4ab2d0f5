from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from typing import Mapping


def _decode(raw: object, *, where: str) -> dict[int, bool]:
    if not isinstance(raw, dict):
        raise ValueError(f"Expected object in {where}, got {type(raw).__name__}")
    result: dict[int, bool] = {}
    for key, value in raw.items():
        try:
            chat_id = int(key)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid chat id {key!r} in {where}") from None
        if not isinstance(value, bool):
            raise ValueError(f"Invalid subscription flag {value!r} for chat id {chat_id} in {where}")
        result[chat_id] = value
    return result


@dataclass(slots=True)
class JsonFileSubscriberStore:
    """
    JSON 文件存储（默认 ./chats.json）。

    文件格式：{"<chat_id>": true|false, ...}，与早期版本写出的 chats.json 兼容。

    v0 约定：
    - 文件不存在视为首次运行，返回空映射
    - 内容损坏/结构不符直接抛 ValueError
    - 保存时先写同目录临时文件再 os.replace，保证磁盘上不会出现写了一半的文件
    """

    path: str
    file_mode: int = 0o644

    def load(self) -> dict[int, bool]:
        try:
            with open(self.path, "rb") as f:
                raw = json.loads(f.read().decode("utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {self.path}: {e}") from e
        return _decode(raw, where=self.path)

    def save(self, subscribers: Mapping[int, bool]) -> None:
        payload = {str(chat_id): bool(active) for chat_id, active in sorted(subscribers.items())}
        data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".chats-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, self.file_mode)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
