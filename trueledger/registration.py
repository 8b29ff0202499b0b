"""Contract transactions for registering users and setting the authenticity contract."""

from __future__ import annotations

import logging

from .db import ApiError
from .hashing import to_checksum_address

log = logging.getLogger(__name__)

DEFAULT_GAS_PRICE = 2_000_000_000
MAX_USERNAME_BYTES = 32

_REGISTER_RULES = (
    ("Username cannot be empty", 400, None),
    ("Username too long", 400, None),
    ("ADDRESS_ZERO", 400, "Caller address cannot be zero"),
    ("AUTHENTICITY_NOT_SET", 500, "Authenticity contract not set"),
)

_AUTHENTICITY_RULES = (
    ("Invalid authenticity address", 400, None),
    ("ONLY_OWNER", 403, "Caller is not the contract owner"),
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


def _transact(contract, function: str, args) -> dict:
    """Check funds against a buffered gas estimate, then send and await the receipt."""
    try:
        balance = contract.get_balance(contract.wallet_address())
    except Exception as exc:
        raise _Failure(f"Failed to check wallet balance: {exc}") from exc

    try:
        estimate = contract.estimate_gas(function, args)
    except Exception as exc:
        raise _Failure(f"Gas estimation failed: {exc}") from exc
    gas_limit = estimate * 120 // 100

    try:
        gas_price = contract.gas_price()
    except Exception:
        gas_price = DEFAULT_GAS_PRICE

    required = gas_limit * gas_price
    if balance < required:
        raise _Failure(f"Insufficient funds: have {balance} wei, need {required} wei")

    try:
        receipt = contract.send(function, args, gas=gas_limit, gas_price=gas_price)
    except Exception as exc:
        raise _Failure(f"Failed to send transaction: {exc}") from exc
    if receipt is None:
        raise _Failure("Transaction receipt not found")
    return {"transaction_hash": _hex_hash(receipt.transaction_hash)}


def _register(contract, username) -> dict:
    if not username:
        raise _Failure("Username cannot be empty")
    if len(username.encode()) > MAX_USERNAME_BYTES:
        raise _Failure(f"Username too long (max {MAX_USERNAME_BYTES} characters)")
    return _transact(contract, "userRegisters", [username])


def user_register(contract, username) -> dict:
    """Register ``username`` on chain for the sending wallet.

    Returns ``{"transaction_hash": ...}``; failures raise :class:`ApiError`.
    """
    try:
        return _register(contract, username)
    except _Failure as exc:
        log.error("Error registering user with username %s: %s", username, exc)
        raise _to_api_error(str(exc), _REGISTER_RULES) from exc


def _set_authenticity(contract, authenticity_address) -> dict:
    try:
        address = to_checksum_address(authenticity_address)
    except (ValueError, TypeError):
        raise _Failure("Invalid authenticity address") from None
    return _transact(contract, "setAuthenticity", [address])


def set_authenticity(contract, authenticity_address) -> dict:
    """Point the ownership contract at the authenticity contract.

    Returns ``{"transaction_hash": ...}``; failures raise :class:`ApiError`.
    """
    try:
        return _set_authenticity(contract, authenticity_address)
    except _Failure as exc:
        log.error("Error setting authenticity address %s: %s", authenticity_address, exc)
        raise _to_api_error(str(exc), _AUTHENTICITY_RULES) from exc