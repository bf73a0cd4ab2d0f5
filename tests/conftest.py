import os
import sys

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from tgcast.models import ChatUpdate  # noqa: E402


@pytest.fixture
def make_update():
    """
    构造 ChatUpdate 的工厂：只关心 update_id/command/chat_id 时少写字段。
    """

    def _make(update_id: int, command: str, chat_id: int | None, first_name: str = "", last_name: str = "") -> ChatUpdate:
        return ChatUpdate(
            update_id=update_id,
            command=command,
            chat_id=chat_id,
            first_name=first_name,
            last_name=last_name,
        )

    return _make
