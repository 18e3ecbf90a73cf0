"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBKeyValueStore
from .kv_store import InMemoryKeyValueStore, KeyValueStore
from .smartthings_auth import SmartThingsOAuthClient, TokenGrant, encode_scopes
from .sqlite_store import SQLiteKeyValueStore

__all__ = [
    "DynamoDBKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "SmartThingsOAuthClient",
    "TokenGrant",
    "encode_scopes",
]
