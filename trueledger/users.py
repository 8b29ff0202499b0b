"""Queries over registered users and manufacturers."""

from __future__ import annotations

from typing import Optional

from .db import ApiError, Database, Manufacturer, UserInfo


def _is_address(text) -> bool:
    return isinstance(text, str) and text.startswith("0x") and len(text) == 42


def sync(db: Database, address) -> dict:
    """Return the user and manufacturer records stored for ``address``."""
    if not _is_address(address):
        raise ApiError(400, "Invalid address format")
    try:
        user_row = db.conn.execute(
            "SELECT * FROM users_info WHERE user_address = ? LIMIT 1", (address,)
        ).fetchone()
        maker_row = db.conn.execute(
            "SELECT * FROM manufacturers WHERE manufacturer_address = ? LIMIT 1",
            (address,),
        ).fetchone()
    except Exception as exc:
        raise ApiError(500, "Internal server error") from exc
    return {
        "user": UserInfo(**dict(user_row)) if user_row is not None else None,
        "manufacturer": Manufacturer(**dict(maker_row)) if maker_row is not None else None,
    }


def get_user(
    db: Database, user_address: Optional[str] = None, username: Optional[str] = None
) -> UserInfo:
    """Look a user up by address, or by username when no address is given."""
    if user_address is None and username is None:
        raise ApiError(400, "Either user_address or username must be provided")
    if user_address is not None:
        query, value = "SELECT * FROM users_info WHERE user_address = ? LIMIT 1", user_address
    else:
        query, value = "SELECT * FROM users_info WHERE username = ? LIMIT 1", username
    try:
        row = db.conn.execute(query, (value,)).fetchone()
    except Exception as exc:
        raise ApiError(500, f"Internal server error: {exc}") from exc
    if row is None:
        raise ApiError(404, "User not found")
    return UserInfo(**dict(row))


def user_exists(db: Database, username) -> bool:
    """Whether any user has taken ``username``."""
    try:
        (count,) = db.conn.execute(
            "SELECT COUNT(*) FROM users_info WHERE username = ?", (username,)
        ).fetchone()
    except Exception as exc:
        raise ApiError(500, f"Internal server error: {exc}") from exc
    return count > 0