from .json_store import JsonFileSubscriberStore
from .sqlite_store import SqliteSubscriberStore
from .store import SubscriberStore

__all__ = [
    "JsonFileSubscriberStore",
    "SqliteSubscriberStore",
    "SubscriberStore",
]
