"""Client for the on-chain ownership contract over JSON-RPC."""

from __future__ import annotations

import json
import time
import urllib.request
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterator, Optional

from .hashing import keccak256, parse_address, to_checksum_address

_CERT = ("string", "string", "string", "uint256", "address", "bytes32", "string[]")
_ITEM = ("string", "string", "string", "uint256", "address", "string", "string[]")
_OWNER = ("string", "string", "string", "address")

_FUNCTIONS = {
    "createItem": (("address", _CERT, "string"), ()),
    "getItem": (("string",), (_ITEM,)),
    "getUsername": (("address",), ("string",)),
    "isOwner": (("address", "string"), ("bool",)),
    "newOwnerClaimOwnership": (("string", "address"), ()),
    "setAuthenticity": (("address",), ()),
    "userRegisters": (("string",), ()),
    "verifyOwnership": (("string",), (_OWNER,)),
}

_ERRORS = {
    "ADDRESS_ZERO": ("address",),
    "ALREADY_REGISTERED": ("address",),
    "AUTHENTICITY_NOT_SET": (),
    "ITEM_CLAIMED_ALREADY": ("string",),
    "ITEM_DOESNT_EXIST": ("string",),
    "NAME_TOO_SHORT": ("string",),
    "NOT_REGISTERED": ("address",),
    "ONLY_OWNER": ("address",),
    "UNAUTHORIZED_CALLER": ("address",),
    "UNAVAILABLE_USERNAME": ("string",),
    "Error": ("string",),
}


def event_topic(signature) -> bytes:
    """The 32-byte topic of an event signature."""
    return keccak256(signature)


def function_selector(signature) -> bytes:
    """The 4-byte selector of a function signature."""
    return keccak256(signature)[:4]


def _canonical(t) -> str:
    if isinstance(t, tuple):
        return "(" + ",".join(_canonical(x) for x in t) + ")"
    return t


def _signature(name, types) -> str:
    return f"{name}({','.join(_canonical(t) for t in types)})"


# ---- ABI codec -------------------------------------------------------------

def _is_dynamic(t) -> bool:
    if isinstance(t, tuple):
        return any(_is_dynamic(x) for x in t)
    return t in ("string", "bytes") or t.endswith("[]")


def _head_size(t) -> int:
    if isinstance(t, tuple) and not _is_dynamic(t):
        return sum(_head_size(x) for x in t)
    return 32


def _word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _encode_single(t, value) -> bytes:
    if isinstance(t, tuple):
        return _encode(t, value)
    if t == "address":
        raw = parse_address(value) if isinstance(value, str) else bytes(value)
        return b"\x00" * 12 + raw
    if t == "uint256":
        return _word(int(value))
    if t == "bool":
        return _word(1 if value else 0)
    if t == "bytes32":
        raw = bytes(value)
        if len(raw) > 32:
            raise ValueError("bytes32 value too long")
        return raw.ljust(32, b"\x00")
    if t in ("string", "bytes"):
        raw = value.encode() if isinstance(value, str) else bytes(value)
        return _word(len(raw)) + raw + b"\x00" * (-len(raw) % 32)
    if t.endswith("[]"):
        inner = t[:-2]
        items = list(value)
        return _word(len(items)) + _encode(tuple([inner] * len(items)), items)
    raise ValueError(f"unsupported ABI type {t!r}")


def _encode(types, values) -> bytes:
    values = list(values)
    if len(values) != len(types):
        raise ValueError("argument count does not match ABI types")
    head_len = sum(_head_size(t) for t in types)
    heads, tails = [], []
    offset = head_len
    for t, v in zip(types, values):
        enc = _encode_single(t, v)
        if _is_dynamic(t):
            heads.append(_word(offset))
            tails.append(enc)
            offset += len(enc)
        else:
            heads.append(enc)
    return b"".join(heads) + b"".join(tails)


def _decode_single(t, data: bytes):
    if isinstance(t, tuple):
        return _decode(t, data)
    if t == "address":
        return to_checksum_address(data[12:32])
    if t == "uint256":
        return int.from_bytes(data[:32], "big")
    if t == "bool":
        return int.from_bytes(data[:32], "big") != 0
    if t == "bytes32":
        return bytes(data[:32])
    if t in ("string", "bytes"):
        n = int.from_bytes(data[:32], "big")
        raw = bytes(data[32:32 + n])
        return raw.decode() if t == "string" else raw
    if t.endswith("[]"):
        n = int.from_bytes(data[:32], "big")
        return list(_decode(tuple([t[:-2]] * n), data[32:]))
    raise ValueError(f"unsupported ABI type {t!r}")


def _decode(types, data: bytes) -> tuple:
    values = []
    pos = 0
    for t in types:
        if _is_dynamic(t):
            offset = int.from_bytes(data[pos:pos + 32], "big")
            values.append(_decode_single(t, data[offset:]))
            pos += 32
        else:
            values.append(_decode_single(t, data[pos:]))
            pos += _head_size(t)
    return tuple(values)


def _hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _unhex(text: str) -> bytes:
    return bytes.fromhex(text[2:] if text.startswith("0x") else text)


# ---- data types ------------------------------------------------------------

class ContractRevert(Exception):
    """A call or transaction rejected by the node or the contract."""

    def __init__(self, message, error_name=None):
        super().__init__(message)
        self.error_name = error_name


@dataclass
class Certificate:
    name: str
    unique_id: str
    serial: str
    date: int
    owner: str
    metadata_hash: bytes
    metadata: list[str]

    def as_abi(self) -> tuple:
        return (self.name, self.unique_id, self.serial, self.date,
                self.owner, self.metadata_hash, list(self.metadata))


@dataclass
class OnChainItem:
    name: str
    item_id: str
    serial: str
    date: int
    owner: str
    manufacturer: str
    metadata: list[str]


@dataclass(frozen=True)
class OwnershipCreated:
    contract_address: str
    owner: str
    SIGNATURE: ClassVar[str] = "OwnershipCreated(address,address)"


@dataclass(frozen=True)
class UserRegistered:
    user_address: str
    username: str
    SIGNATURE: ClassVar[str] = "UserRegistered(address,string)"


@dataclass(frozen=True)
class ItemCreated:
    item_id: str
    SIGNATURE: ClassVar[str] = "ItemCreated(string)"


@dataclass(frozen=True)
class OwnershipTransferred:
    item_id: str
    new_owner: str
    old_owner: str
    SIGNATURE: ClassVar[str] = "OwnershipTransferred(string,address,address)"


@dataclass(frozen=True)
class AuthenticitySet:
    authenticity_address: str
    SIGNATURE: ClassVar[str] = "AuthenticitySet(address)"


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_hash: str
    block_number: int
    status: int


def _topic_address(topic: str) -> str:
    return to_checksum_address(_unhex(topic)[-20:])


_DECODERS: dict[bytes, tuple[type, Callable]] = {
    event_topic(OwnershipCreated.SIGNATURE): (
        OwnershipCreated,
        lambda t, d: OwnershipCreated(_topic_address(t[1]), _topic_address(t[2])),
    ),
    event_topic(UserRegistered.SIGNATURE): (
        UserRegistered,
        lambda t, d: UserRegistered(_topic_address(t[1]), _decode(("string",), d)[0]),
    ),
    event_topic(ItemCreated.SIGNATURE): (
        ItemCreated,
        lambda t, d: ItemCreated(_decode(("string",), d)[0]),
    ),
    event_topic(OwnershipTransferred.SIGNATURE): (
        OwnershipTransferred,
        lambda t, d: OwnershipTransferred(
            _decode(("string",), d)[0], _topic_address(t[1]), _topic_address(t[2])
        ),
    ),
    event_topic(AuthenticitySet.SIGNATURE): (
        AuthenticitySet,
        lambda t, d: AuthenticitySet(_topic_address(t[1])),
    ),
}


def _decode_log(log: dict):
    topics = log["topics"]
    entry = _DECODERS.get(_unhex(topics[0])) if topics else None
    if entry is None:
        return None
    return entry[1](topics, _unhex(log.get("data", "0x")))


def _decode_revert(data: bytes) -> Optional[tuple[str, str]]:
    selector, body = data[:4], data[4:]
    for name, types in _ERRORS.items():
        if function_selector(_signature(name, types)) == selector:
            args = _decode(types, body)
            if name == "Error":
                return name, str(args[0])
            return name, f"{name}({', '.join(str(a) for a in args)})"
    return None


def _http_transport(url: str) -> Callable[[str, list], dict]:
    counter = iter(range(1, 1 << 62))

    def call(method: str, params: list) -> dict:
        body = json.dumps(
            {"jsonrpc": "2.0", "id": next(counter), "method": method, "params": params}
        ).encode()
        request = urllib.request.Request(
            url, data=body, headers={"Content-Type": "application/json"}
        )
        with urllib.request.urlopen(request, timeout=30) as response:
            return json.loads(response.read())

    return call


class OwnershipContract:
    """The ownership contract at ``address``, reached through a JSON-RPC node.

    ``transport`` takes a method name and parameter list and returns the
    JSON-RPC response object; when omitted, ``url`` is used over HTTP.
    Transactions are sent from ``sender`` (or the node's first account).
    """

    def __init__(self, address, *, url=None, transport=None, sender=None,
                 poll_interval=1.0, receipt_attempts=60):
        if transport is None:
            if url is None:
                raise ValueError("either url or transport is required")
            transport = _http_transport(url)
        self.address = to_checksum_address(address)
        self._transport = transport
        self._sender = to_checksum_address(sender) if sender else None
        self._poll_interval = poll_interval
        self._receipt_attempts = receipt_attempts

    def _rpc(self, method: str, params: list):
        response = self._transport(method, params)
        error = response.get("error")
        if error is None:
            return response.get("result")
        message = error.get("message", "RPC error")
        data = error.get("data")
        if isinstance(data, dict):
            data = data.get("data")
        if isinstance(data, str) and len(data) >= 10:
            try:
                decoded = _decode_revert(_unhex(data))
            except ValueError:
                decoded = None
            if decoded:
                raise ContractRevert(decoded[1], decoded[0])
        raise ContractRevert(message)

    def _calldata(self, function: str, args) -> str:
        try:
            inputs, _ = _FUNCTIONS[function]
        except KeyError:
            raise ValueError(f"unknown contract function {function!r}") from None
        return _hex(function_selector(_signature(function, inputs)) + _encode(inputs, args))

    def wallet_address(self) -> str:
        if self._sender is None:
            accounts = self._rpc("eth_accounts", [])
            if not accounts:
                raise ContractRevert("node has no accounts to send from")
            self._sender = to_checksum_address(accounts[0])
        return self._sender

    def get_balance(self, address) -> int:
        return int(self._rpc("eth_getBalance", [to_checksum_address(address), "latest"]), 16)

    def gas_price(self) -> int:
        return int(self._rpc("eth_gasPrice", []), 16)

    def estimate_gas(self, function, args) -> int:
        tx = {"from": self.wallet_address(), "to": self.address,
              "data": self._calldata(function, args)}
        return int(self._rpc("eth_estimateGas", [tx]), 16)

    def send(self, function, args, gas=None, gas_price=None) -> Optional[TransactionReceipt]:
        """Send a transaction and wait for its receipt; None if it never arrives."""
        tx = {"from": self.wallet_address(), "to": self.address,
              "data": self._calldata(function, args)}
        if gas is not None:
            tx["gas"] = hex(gas)
        if gas_price is not None:
            tx["gasPrice"] = hex(gas_price)
        tx_hash = self._rpc("eth_sendTransaction", [tx])
        for attempt in range(self._receipt_attempts):
            receipt = self._rpc("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                return TransactionReceipt(
                    transaction_hash=receipt.get("transactionHash", tx_hash),
                    block_number=int(receipt.get("blockNumber") or "0x0", 16),
                    status=int(receipt.get("status") or "0x0", 16),
                )
            if attempt + 1 < self._receipt_attempts:
                time.sleep(self._poll_interval)
        return None

    def get_item(self, item_id) -> OnChainItem:
        call = {"to": self.address, "data": self._calldata("getItem", [item_id])}
        result = _unhex(self._rpc("eth_call", [call, "latest"]))
        (fields,) = _decode(_FUNCTIONS["getItem"][1], result)
        return OnChainItem(*fields)

    def get_block_number(self) -> int:
        return int(self._rpc("eth_blockNumber", []), 16)

    def _logs(self, topics, from_block: int, to_block: int) -> list:
        params = {"address": self.address, "fromBlock": hex(from_block),
                  "toBlock": hex(to_block), "topics": [topics]}
        logs = self._rpc("eth_getLogs", [params]) or []
        logs.sort(key=lambda log: (int(log.get("blockNumber", "0x0"), 16),
                                   int(log.get("logIndex", "0x0"), 16)))
        return logs

    def query_events(self, event_type, from_block, to_block) -> list:
        """Events of one type in a block range, as (event, tx_hash) pairs."""
        topic = _hex(event_topic(event_type.SIGNATURE))
        return [(_decode_log(log), log["transactionHash"])
                for log in self._logs(topic, from_block, to_block)]

    def stream_events(self, from_block) -> Iterator[tuple]:
        """Yield (event, tx_hash) for every contract event from ``from_block`` on."""
        topics = [_hex(t) for t in _DECODERS]
        next_block = from_block
        while True:
            try:
                latest = self.get_block_number()
                if latest >= next_block:
                    logs = self._logs(topics, next_block, latest)
                    next_block = latest + 1
                    for log in logs:
                        event = _decode_log(log)
                        if event is not None:
                            yield event, log["transactionHash"]
            except (ContractRevert, OSError):
                pass
            time.sleep(self._poll_interval)