"""Contract transactions: claiming ownership, creating items, and QR output."""

from __future__ import annotations

import logging
import sqlite3

from .contract import Certificate
from .db import ApiError, Database
from .hashing import to_checksum_address

log = logging.getLogger(__name__)

DEFAULT_GAS_PRICE = 2_000_000_000
ITEM_OWNER = "0xF2E7E2f51D7C9eEa9B0313C2eCa12f8e43bd1855"
ITEM_METADATA_HASH = bytes.fromhex(
    "5eaad066aaff0c6b04b35e501adc0a632a28e458c08f02309b866ead0e19f48f"
)
ITEM_SERIAL = "12345"
ITEM_DATE = 123456789

_CLAIM_RULES = (
    ("Item ID cannot be empty", 400, None),
    ("Invalid caller address", 400, None),
    ("Item ID not found", 404, None),
    ("Caller does not match temp_owner", 403, None),
    ("Failed to query database", 500, None),
    ("ADDRESS_ZERO", 400, "Caller address cannot be zero"),
    ("AUTHENTICITY_NOT_SET", 500, "Authenticity contract not set"),
    ("Caller not authorized", 403, "Caller not authorized to claim ownership"),
)

_CREATE_RULES = (
    ("Caller address is invalid", 400, None),
    ("Owner address is invalid", 400, None),
    ("Metadata hash is invalid", 400, None),
    ("Field cannot be empty", 400, None),
    ("Date cannot be zero", 400, None),
    ("ADDRESS_ZERO", 400, "Caller or owner address cannot be zero"),
    ("AUTHENTICITY_NOT_SET", 500, "Authenticity contract not set"),
    ("UNAUTHORIZED", 403, "Caller not authorized to create item"),
)


class _Failure(RuntimeError):
    """A step of a transaction flow failed; the message decides the status."""


def _to_api_error(message: str, rules) -> ApiError:
    for needle, status, replacement in rules:
        if needle in message:
            return ApiError(status, replacement or message)
    return ApiError(500, f"Internal server error: {message}")


def _hex_hash(tx_hash: str) -> str:
    digits = tx_hash[2:] if tx_hash.startswith("0x") else tx_hash
    return "0x" + bytes.fromhex(digits).hex()


def _balance(contract) -> int:
    try:
        return contract.get_balance(contract.wallet_address())
    except Exception as exc:
        raise _Failure(f"Failed to check wallet balance: {exc}") from exc


def _gas_price(contract) -> int:
    try:
        return contract.gas_price()
    except Exception:
        return DEFAULT_GAS_PRICE


def _send(contract, function, args, gas=None, gas_price=None) -> dict:
    try:
        receipt = contract.send(function, args, gas=gas, gas_price=gas_price)
    except Exception as exc:
        raise _Failure(f"Failed to send transaction: {exc}") from exc
    if receipt is None:
        raise _Failure("Transaction receipt not found")
    return {"transaction_hash": _hex_hash(receipt.transaction_hash)}


def _claim(db: Database, contract, ownership_code, caller) -> dict:
    if not ownership_code:
        raise _Failure("Item ID cannot be empty")
    if not caller:
        raise _Failure("Caller address cannot be empty")
    try:
        caller_address = to_checksum_address(caller)
    except ValueError:
        raise _Failure("Invalid caller address") from None

    try:
        row = db.conn.execute(
            "SELECT temp_owner FROM ownership_codes WHERE item_id = ? LIMIT 1",
            (ownership_code,),
        ).fetchone()
    except sqlite3.Error as exc:
        raise _Failure(f"Failed to query database: {exc}") from exc
    if row is None:
        raise _Failure("Item ID not found")
    temp_owner = row["temp_owner"]
    if caller.lower() != temp_owner.lower():
        raise _Failure("Caller is not the temp_owner")

    log.debug("Caller: %s, temp owner (from DB): %s", caller_address, temp_owner)
    balance = _balance(contract)

    args = [ownership_code, caller_address]
    try:
        estimate = contract.estimate_gas("newOwnerClaimOwnership", args)
    except Exception as exc:
        raise _Failure(f"Gas estimation failed: {exc}") from exc
    gas_limit = estimate * 120 // 100
    gas_price = _gas_price(contract)

    required = gas_limit * gas_price
    if balance < required:
        raise _Failure(f"Insufficient funds: have {balance} wei, need {required} wei")

    return _send(contract, "newOwnerClaimOwnership", args, gas=gas_limit, gas_price=gas_price)


def claim_ownership(db: Database, contract, ownership_code, caller) -> dict:
    """Claim the item behind ``ownership_code`` for ``caller`` on chain.

    Returns ``{"transaction_hash": ...}``; failures raise :class:`ApiError`.
    """
    try:
        return _claim(db, contract, ownership_code, caller)
    except _Failure as exc:
        log.error("Error claiming ownership for item %s: %s", ownership_code, exc)
        raise _to_api_error(str(exc), _CLAIM_RULES) from exc


def _create(contract, caller, name, unique_id, metadata, manufacturer_name) -> dict:
    if not caller:
        raise _Failure("Caller address cannot be empty")
    if not name:
        raise _Failure("Certificate name cannot be empty")
    if not unique_id:
        raise _Failure("Certificate unique ID cannot be empty")
    if not manufacturer_name:
        raise _Failure("Manufacturer name cannot be empty")

    try:
        caller_address = to_checksum_address(caller)
    except ValueError:
        raise _Failure("Caller address is invalid") from None

    _balance(contract)

    certificate = Certificate(
        name=name,
        unique_id=unique_id,
        serial=ITEM_SERIAL,
        date=ITEM_DATE,
        owner=to_checksum_address(ITEM_OWNER),
        metadata_hash=ITEM_METADATA_HASH,
        metadata=list(metadata),
    )
    gas_price = _gas_price(contract)
    args = [caller_address, certificate.as_abi(), manufacturer_name]
    return _send(contract, "createItem", args, gas_price=gas_price)


def create_item(contract, caller, name, unique_id, metadata, manufacturer_name) -> dict:
    """Create an item on chain for ``caller``.

    Returns ``{"transaction_hash": ...}``; failures raise :class:`ApiError`.
    """
    try:
        return _create(contract, caller, name, unique_id, metadata, manufacturer_name)
    except _Failure as exc:
        log.error("Error creating item with unique_id %s: %s", unique_id, exc)
        raise _to_api_error(str(exc), _CREATE_RULES) from exc


def generate_qr_code(certificate) -> str:
    """Answer a QR code request for a signed certificate; the body is empty."""
    return ""