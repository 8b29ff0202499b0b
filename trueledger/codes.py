"""Ownership transfer codes: creating, fetching, checking and revoking them."""

from __future__ import annotations

from datetime import datetime, timezone

from .db import ApiError, Database, OwnershipCode
from .hashing import keccak256


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _has_shape(text, length: int) -> bool:
    return isinstance(text, str) and text.startswith("0x") and len(text.encode()) == length


def check_before_claim(db: Database, ownership_code, caller) -> bool:
    """Confirm that ``caller`` is the temporary owner named by ``ownership_code``.

    Addresses are compared without regard to case.
    """
    try:
        row = db.conn.execute(
            "SELECT temp_owner FROM ownership_codes WHERE ownership_code = ? LIMIT 1",
            (ownership_code,),
        ).fetchone()
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to query database: {exc}"
        ) from exc
    if row is None:
        raise ApiError(500, "Internal server error: Item ID not found")
    if caller.lower() != row["temp_owner"].lower():
        raise ApiError(400, "Caller is not the temp_owner")
    return True


def get_ownership_code(db: Database, ownership_code, caller) -> OwnershipCode:
    """Return the stored code when ``caller`` is its temporary owner."""
    if not _has_shape(ownership_code, 66):
        raise ApiError(400, "Invalid ownership_code format")
    if not _has_shape(caller, 42):
        raise ApiError(400, "Invalid caller address format")
    try:
        row = db.conn.execute(
            "SELECT * FROM ownership_codes WHERE ownership_code = ? AND temp_owner = ? "
            "LIMIT 1",
            (ownership_code, caller),
        ).fetchone()
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to fetch ownership code: {exc}"
        ) from exc
    if row is None:
        raise ApiError(404, "Ownership code not found or caller is not temp_owner")
    return OwnershipCode(**dict(row))


def revoke_ownership_code(db: Database, ownership_code, caller) -> str:
    """Delete a code issued by ``caller``; return the revoked code."""
    try:
        with db.transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM ownership_codes WHERE ownership_code = ? AND item_owner = ?",
                (ownership_code, caller),
            ).rowcount
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to delete ownership code: {exc}"
        ) from exc
    if deleted == 0:
        try:
            (count,) = db.conn.execute(
                "SELECT COUNT(*) FROM ownership_codes WHERE ownership_code = ?",
                (ownership_code,),
            ).fetchone()
        except Exception as exc:
            raise ApiError(
                500, f"Internal server error: Database query error: {exc}"
            ) from exc
        if count > 0:
            raise ApiError(400, "Caller is not the item owner")
        raise ApiError(404, "Ownership code not found")
    return ownership_code


def transfer_ownership_code(db: Database, item_id, caller, temp_owner) -> str:
    """Issue a code letting ``temp_owner`` claim ``item_id`` from ``caller``."""
    if caller == temp_owner:
        raise ApiError(400, "Caller cannot be the temporary owner")
    try:
        (registered,) = db.conn.execute(
            "SELECT COUNT(*) FROM users_info WHERE user_address = ? AND is_registered = 1",
            (caller,),
        ).fetchone()
    except Exception as exc:
        raise ApiError(500, f"Internal server error: {exc}") from exc
    if registered == 0:
        raise ApiError(400, "Caller is not registered")
    try:
        (owned,) = db.conn.execute(
            "SELECT COUNT(*) FROM items WHERE item_id = ? AND owner = ?",
            (item_id, caller),
        ).fetchone()
    except Exception as exc:
        raise ApiError(
            500,
            "Internal server error: Failed to check item existence and ownership: "
            f"{exc}",
        ) from exc
    if owned == 0:
        raise ApiError(
            500, "Internal server error: Item not found or caller is not the owner"
        )

    code = "0x" + keccak256(f"{caller}{temp_owner}{item_id}{_now()}").hex()
    try:
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO ownership_codes "
                "(ownership_code, item_id, item_owner, temp_owner, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (code, item_id, caller, temp_owner, _now()),
            )
    except Exception as exc:
        raise ApiError(
            500, f"Internal server error: Failed to insert ownership code: {exc}"
        ) from exc
    return code