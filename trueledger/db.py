"""SQLite storage for the ledger's indexed state."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

sqlite3.register_adapter(list, json.dumps)
sqlite3.register_converter("JSONARRAY", json.loads)
sqlite3.register_converter("BOOLEAN", lambda raw: bool(int(raw)))

_SCHEMA = """
CREATE TABLE IF NOT EXISTS authenticity_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    authenticity_address TEXT NOT NULL,
    tnx_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS certificates (
    unique_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    serial TEXT NOT NULL,
    date INTEGER NOT NULL,
    owner TEXT NOT NULL,
    metadata_hash TEXT NOT NULL,
    metadata JSONARRAY NOT NULL,
    signature TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS code_revokations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_hash TEXT NOT NULL,
    tnx_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS contracts (
    contract_address TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    tnx_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    name TEXT NOT NULL,
    serial TEXT NOT NULL,
    date INTEGER NOT NULL,
    owner TEXT NOT NULL,
    manufacturer TEXT NOT NULL,
    metadata JSONARRAY NOT NULL,
    created_at TEXT NOT NULL,
    tnx_hash TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS manufacturers (
    manufacturer_address TEXT PRIMARY KEY,
    manufacturer_name TEXT NOT NULL,
    is_registered BOOLEAN NOT NULL,
    registered_at TEXT NOT NULL,
    tnx_hash TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS ownership_claims (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    old_owner TEXT NOT NULL,
    new_owner TEXT NOT NULL,
    tnx_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS ownership_codes (
    ownership_code TEXT PRIMARY KEY,
    item_id TEXT NOT NULL,
    item_owner TEXT NOT NULL,
    temp_owner TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS users_info (
    user_address TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    is_registered BOOLEAN NOT NULL,
    created_at TEXT NOT NULL,
    tnx_hash TEXT NOT NULL
);
"""


class ApiError(Exception):
    """An error carrying the HTTP status it maps to."""

    def __init__(self, status, message):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message


@dataclass
class Item:
    id: int
    item_id: str
    name: str
    serial: str
    date: int
    owner: str
    manufacturer: str
    metadata: list[Optional[str]]
    created_at: str
    tnx_hash: str


@dataclass
class UserInfo:
    user_address: str
    username: str
    is_registered: bool
    created_at: str
    tnx_hash: str


@dataclass
class Manufacturer:
    manufacturer_address: str
    manufacturer_name: str
    is_registered: bool
    registered_at: str
    tnx_hash: str


@dataclass
class OwnershipCode:
    ownership_code: str
    item_id: str
    item_owner: str
    temp_owner: str
    created_at: str


class Database:
    """A connection to the ledger database, with the schema in place."""

    def __init__(self, path):
        self.conn = sqlite3.connect(
            str(path), detect_types=sqlite3.PARSE_DECLTYPES, check_same_thread=False
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(_SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically: commit on success, roll back on error."""
        with self.conn:
            yield self.conn

    def close(self) -> None:
        self.conn.close()