# trueledger

Services for an item-ownership ledger. Items, users, manufacturers, one-time
ownership transfer codes and ownership claims are kept in a SQLite database.
Transactions go to an ownership contract through a JSON-RPC node, and the
contract's events are indexed into the database.

## Installation

```
pip install .
```

The `test` extra adds pytest, which runs the tests in `tests/`.

## Modules

- `trueledger.db` holds `Database`, a SQLite connection with the ledger schema
  created on open. Pass a file path or `":memory:"`. `Database.transaction()`
  is a context manager that commits on success and rolls back on error, and
  `Database.close()` closes the connection. The module also defines the record
  dataclasses `Item`, `UserInfo`, `Manufacturer` and `OwnershipCode`, and
  `ApiError`. Every service raises `ApiError`, which carries an HTTP-style
  `status` and a `message`.
- `trueledger.hashing` provides `keccak256`, `encode_string_array` (ABI
  encoding of one `string[]`), `to_meta_hash`, `parse_address` and
  `to_checksum_address`.
- `trueledger.contract` provides `OwnershipContract`, a JSON-RPC client for the
  ownership contract, along with `event_topic` and `function_selector`. It also
  defines the event types (`OwnershipCreated`, `UserRegistered`, `ItemCreated`,
  `OwnershipTransferred` and `AuthenticitySet`), the types `Certificate`,
  `OnChainItem` and `TransactionReceipt`, and `ContractRevert`. A contract
  revert is decoded into `ContractRevert`, with the contract's error name in
  `error_name`.
- `trueledger.items` provides `batch_items`, `get_item` and `get_owner_items`.
- `trueledger.users` provides `sync`, `get_user` and `user_exists`.
- `trueledger.codes` provides `transfer_ownership_code`, `get_ownership_code`,
  `check_before_claim` and `revoke_ownership_code`.
- `trueledger.events` provides one `process_*_event` function per event type,
  plus `dispatch_event`, `sync_history` and `listen_for_ownership_events`.
  `sync_history` indexes the last 20 blocks in chunks. The listener then
  follows new events and never returns.
- `trueledger.transactions` provides `claim_ownership`, `create_item` and
  `generate_qr_code`.
- `trueledger.registration` provides `user_register` and `set_authenticity`.

## Example

```python
from trueledger.db import ApiError, Database
from trueledger.codes import (
    check_before_claim,
    get_ownership_code,
    revoke_ownership_code,
    transfer_ownership_code,
)

OWNER = "0x1234567890abcdef1234567890abcdef12345678"
BUYER = "0xabcdef1234567890abcdef1234567890abcdef12"

db = Database(":memory:")
with db.transaction() as conn:
    conn.execute(
        "INSERT INTO users_info (user_address, username, is_registered, created_at, tnx_hash) "
        "VALUES (?, ?, ?, ?, ?)",
        (OWNER, "alice", True, "2025-01-01T00:00:00+00:00", "0x" + "00" * 32),
    )
    conn.execute(
        "INSERT INTO items (item_id, name, serial, date, owner, manufacturer, metadata, "
        "created_at, tnx_hash) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        ("item_001", "Widget", "SN-0001", 1693526400, OWNER, "Acme Corp",
         ["color: blue"], "2025-01-01T00:00:00+00:00", "0x" + "00" * 32),
    )

code = transfer_ownership_code(db, "item_001", OWNER, BUYER)
print(get_ownership_code(db, code, BUYER).item_id)   # item_001
print(check_before_claim(db, code, BUYER))           # True
print(revoke_ownership_code(db, code, OWNER) == code)  # True

try:
    transfer_ownership_code(db, "item_001", OWNER, OWNER)
except ApiError as err:
    print(err.status, err.message)  # 400 Caller cannot be the temporary owner
finally:
    db.close()
```

## Errors

Failures raise `ApiError`. Its status is 400 for bad input, 403 for a caller
without permission, 404 when the thing asked for is missing, and 500 for
everything else. A message that starts with `Internal server error:` always
comes with status 500. Some lookups report a missing record with status 500
rather than 404, such as `check_before_claim` for an unknown code and
`transfer_ownership_code` for an item the caller does not own.

## Contract access

`OwnershipContract(address, url=..., transport=..., sender=...)` reaches the
node over HTTP at `url`. It can instead use a `transport` callable that takes
a method name and a parameter list and returns the JSON-RPC response.
Transactions are sent with `eth_sendTransaction` from `sender`, or from the
node's first account, so the node must be able to sign for that account.

## What this package does not do

- It serves no HTTP API and has no command-line program. The services are
  plain Python functions.
- It does not create or check signed certificates.
- `generate_qr_code` returns an empty string and renders no QR code.