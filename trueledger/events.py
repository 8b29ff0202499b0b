"""Indexing of ownership-contract events into the ledger database."""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone

from .contract import (
    AuthenticitySet,
    ItemCreated,
    OwnershipCreated,
    OwnershipTransferred,
    UserRegistered,
)
from .db import Database
from .hashing import to_checksum_address

log = logging.getLogger(__name__)

_HISTORY_BLOCKS = 20
_CHUNK_SIZE = 4
_RETRY_DELAY = 5.0
_I64_MAX = (1 << 63) - 1

_EVENT_ORDER = (
    OwnershipCreated,
    UserRegistered,
    ItemCreated,
    OwnershipTransferred,
    AuthenticitySet,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_hash(txn_hash) -> str:
    if txn_hash is None:
        raise ValueError("Transaction hash is required")
    return txn_hash


def _exists(db: Database, sql: str, params: tuple, what: str) -> bool:
    try:
        (count,) = db.conn.execute(sql, params).fetchone()
    except sqlite3.Error as exc:
        raise RuntimeError(f"Failed to check existing {what}: {exc}") from exc
    return count > 0


def _insert(db: Database, sql: str, params: tuple, what: str) -> None:
    try:
        with db.transaction() as conn:
            conn.execute(sql, params)
    except sqlite3.Error as exc:
        raise RuntimeError(f"Failed to insert {what}: {exc}") from exc


def process_ownership_created_event(db: Database, event: OwnershipCreated, txn_hash) -> bool:
    """Record a newly created ownership contract; False if already known."""
    contract_address = to_checksum_address(event.contract_address)
    owner = to_checksum_address(event.owner)
    if _exists(
        db,
        "SELECT COUNT(*) FROM contracts WHERE contract_address = ?",
        (contract_address,),
        "contract",
    ):
        log.info("Skipping duplicate contract created for %s (tx: %s)",
                 contract_address, txn_hash)
        return False
    _insert(
        db,
        "INSERT INTO contracts (contract_address, owner, tnx_hash, created_at) "
        "VALUES (?, ?, ?, ?)",
        (contract_address, owner, _require_hash(txn_hash), _now()),
        "contract",
    )
    return True


def process_user_registered_event(db: Database, event: UserRegistered, txn_hash) -> bool:
    """Record a user registration; False if the address is already known."""
    user_address = to_checksum_address(event.user_address)
    if _exists(
        db,
        "SELECT COUNT(*) FROM users_info WHERE user_address = ?",
        (user_address,),
        "user",
    ):
        log.info("Skipping duplicate user registration for %s (tx: %s)",
                 user_address, txn_hash)
        return False
    _insert(
        db,
        "INSERT INTO users_info (user_address, username, is_registered, created_at, "
        "tnx_hash) VALUES (?, ?, ?, ?, ?)",
        (user_address, str(event.username), True, _now(), _require_hash(txn_hash)),
        "user",
    )
    return True


def process_item_created_event(db: Database, event: ItemCreated, txn_hash, contract) -> bool:
    """Fetch a new item's details from the contract and store them."""
    item_id = str(event.item_id)
    log.debug("Item ID: %s", item_id)
    try:
        item = contract.get_item(item_id)
    except Exception as exc:
        raise RuntimeError(f"Failed to call get_item: {exc}") from exc

    if _exists(db, "SELECT COUNT(*) FROM items WHERE item_id = ?", (item_id,), "item"):
        log.info("Skipping duplicate item creation for %s (tx: %s)", item_id, txn_hash)
        return False

    date = int(item.date)
    if not -_I64_MAX - 1 <= date <= _I64_MAX:
        raise RuntimeError(f"Failed to parse item date: {date} is out of range")

    _insert(
        db,
        "INSERT INTO items (item_id, name, serial, date, owner, manufacturer, metadata, "
        "created_at, tnx_hash) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            item_id,
            item.name,
            item.serial,
            date,
            to_checksum_address(item.owner),
            item.manufacturer,
            list(item.metadata),
            _now(),
            _require_hash(txn_hash),
        ),
        "item",
    )
    return True


def process_ownership_transferred_event(
    db: Database, event: OwnershipTransferred, txn_hash
) -> bool:
    """Apply an ownership transfer: move the item, drop its codes, log the claim."""
    item_id = event.item_id
    new_owner = to_checksum_address(event.new_owner)
    old_owner = to_checksum_address(event.old_owner)
    txn_hash = _require_hash(txn_hash)

    if _exists(
        db,
        "SELECT COUNT(*) FROM ownership_claims WHERE tnx_hash = ?",
        (txn_hash,),
        "ownership transfer",
    ):
        log.info("Skipping duplicate ownership transfer for %s (tx: %s)", item_id, txn_hash)
        return False

    try:
        with db.transaction() as conn:
            row = conn.execute(
                "SELECT owner FROM items WHERE item_id = ? ORDER BY id LIMIT 1", (item_id,)
            ).fetchone()
            if row is None:
                log.warning("item_id %s not found in items table", item_id)
            elif row["owner"].lower() != old_owner.lower():
                log.warning("old_owner (%s) does not match items.owner (%s) for item %s",
                            old_owner, row["owner"], item_id)
            else:
                conn.execute(
                    "UPDATE items SET owner = ? WHERE item_id = ?", (new_owner, item_id)
                )
                log.info("Updated owner for item %s from %s to %s",
                         item_id, old_owner, new_owner)

            deleted = conn.execute(
                "DELETE FROM ownership_codes WHERE item_id = ?", (item_id,)
            ).rowcount
            if deleted > 0:
                log.info("Deleted %d ownership code(s) for item %s", deleted, item_id)

            conn.execute(
                "INSERT INTO ownership_claims (item_id, old_owner, new_owner, tnx_hash, "
                "created_at) VALUES (?, ?, ?, ?, ?)",
                (item_id, old_owner, new_owner, txn_hash, _now()),
            )
    except sqlite3.Error as exc:
        raise RuntimeError(f"Failed to apply ownership transfer: {exc}") from exc
    return True


def process_authenticity_set_event(db: Database, event: AuthenticitySet, txn_hash) -> bool:
    """Record the authenticity contract address; False if already known."""
    authenticity_address = to_checksum_address(event.authenticity_address)
    if _exists(
        db,
        "SELECT COUNT(*) FROM authenticity_settings WHERE authenticity_address = ?",
        (authenticity_address,),
        "authenticity setting",
    ):
        log.info("Skipping duplicate authenticity setting for %s (tx: %s)",
                 authenticity_address, txn_hash)
        return False
    _insert(
        db,
        "INSERT INTO authenticity_settings (authenticity_address, tnx_hash, created_at) "
        "VALUES (?, ?, ?)",
        (authenticity_address, _require_hash(txn_hash), _now()),
        "authenticity setting",
    )
    return True


def dispatch_event(db: Database, contract, event, txn_hash) -> bool:
    """Hand an event to its processor; False when the event type is not indexed."""
    if isinstance(event, OwnershipCreated):
        process_ownership_created_event(db, event, txn_hash)
    elif isinstance(event, UserRegistered):
        process_user_registered_event(db, event, txn_hash)
    elif isinstance(event, ItemCreated):
        process_item_created_event(db, event, txn_hash, contract)
    elif isinstance(event, OwnershipTransferred):
        process_ownership_transferred_event(db, event, txn_hash)
    elif isinstance(event, AuthenticitySet):
        process_authenticity_set_event(db, event, txn_hash)
    else:
        return False
    return True


def sync_history(db: Database, contract, latest_block) -> None:
    """Index the events of the recent blocks before ``latest_block``, in small chunks."""
    current = max(latest_block - _HISTORY_BLOCKS, 0)
    while current < latest_block:
        to_block = min(current + _CHUNK_SIZE, latest_block)
        log.info("Querying Ownership historical events from block %d to %d",
                 current, to_block)
        batches = []
        for event_type in _EVENT_ORDER:
            try:
                batches.append(contract.query_events(event_type, current, to_block))
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to query {event_type.__name__} events: {exc}"
                ) from exc
        for batch in batches:
            for event, txn_hash in batch:
                dispatch_event(db, contract, event, txn_hash)
        current = to_block + 1


def listen_for_ownership_events(db: Database, contract) -> None:
    """Index recent history, then follow new contract events indefinitely."""
    try:
        latest = contract.get_block_number()
    except Exception as exc:
        raise RuntimeError(f"Failed to get latest block: {exc}") from exc
    sync_history(db, contract, latest)

    log.info("Starting Ownership event stream from block %d", latest + 1)
    while True:
        for event, txn_hash in contract.stream_events(latest + 1):
            dispatch_event(db, contract, event, txn_hash)
        log.warning("Event stream ended unexpectedly")
        time.sleep(_RETRY_DELAY)