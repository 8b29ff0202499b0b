"""Read-only queries over the indexed items table."""

from __future__ import annotations

from .db import ApiError, Database, Item

_SUMMARY_FIELDS = (
    "item_id",
    "name",
    "serial",
    "date",
    "owner",
    "manufacturer",
    "metadata",
    "created_at",
)


def _to_item(row) -> Item:
    return Item(**{key: row[key] for key in row.keys()})


def batch_items(db: Database, item_ids) -> list[dict]:
    """Return summaries of every stored item whose id is in ``item_ids``.

    The summaries leave out the row id and the transaction hash.
    """
    wanted = list(item_ids)
    if not wanted:
        raise ApiError(400, "Invalid or empty item_ids list")
    placeholders = ",".join("?" for _ in wanted)
    columns = ", ".join(_SUMMARY_FIELDS)
    try:
        rows = db.conn.execute(
            f"SELECT {columns} FROM items WHERE item_id IN ({placeholders}) ORDER BY id",
            wanted,
        ).fetchall()
    except Exception as exc:
        raise ApiError(500, f"Internal server error: {exc}") from exc
    return [{field: row[field] for field in _SUMMARY_FIELDS} for row in rows]


def get_item(db: Database, item_id) -> Item:
    """Return the item with the given id."""
    if not item_id:
        raise ApiError(500, "Internal server error: Item ID cannot be empty")
    try:
        row = db.conn.execute(
            "SELECT * FROM items WHERE item_id = ? ORDER BY id LIMIT 1", (item_id,)
        ).fetchone()
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to query database: {exc}"
        ) from exc
    if row is None:
        raise ApiError(404, "Item not found")
    return _to_item(row)


def get_owner_items(db: Database, owner) -> list[Item]:
    """Return every item currently held by ``owner``."""
    if not owner:
        raise ApiError(500, "Internal server error: Owner address must be provided")
    try:
        rows = db.conn.execute(
            "SELECT * FROM items WHERE owner = ? ORDER BY id", (owner,)
        ).fetchall()
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to fetch items: {exc}"
        ) from exc
    return [_to_item(row) for row in rows]