import pytest

from trueledger.contract import ContractRevert, TransactionReceipt
from trueledger.db import ApiError, Database
from trueledger.hashing import to_checksum_address
from trueledger.transactions import (
    DEFAULT_GAS_PRICE,
    ITEM_METADATA_HASH,
    ITEM_OWNER,
    claim_ownership,
    create_item,
    generate_qr_code,
)

WALLET = "0x" + "99" * 20
CALLER = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20
TX_HASH = "0x" + "12" * 32


class FakeContract:
    def __init__(self, balance=10**18, estimate=100_000, price=5,
                 receipt=None, estimate_error=None, send_error=None,
                 price_error=None, balance_error=None, no_receipt=False):
        self.balance = balance
        self.estimate = estimate
        self.price = price
        self.receipt = receipt or TransactionReceipt(TX_HASH, 7, 1)
        self.no_receipt = no_receipt
        self.estimate_error = estimate_error
        self.send_error = send_error
        self.price_error = price_error
        self.balance_error = balance_error
        self.sent = []
        self.estimated = []
        self.balance_queries = []

    def wallet_address(self):
        return WALLET

    def get_balance(self, address):
        self.balance_queries.append(address)
        if self.balance_error:
            raise self.balance_error
        return self.balance

    def gas_price(self):
        if self.price_error:
            raise self.price_error
        return self.price

    def estimate_gas(self, function, args):
        self.estimated.append((function, list(args)))
        if self.estimate_error:
            raise self.estimate_error
        return self.estimate

    def send(self, function, args, gas=None, gas_price=None):
        self.sent.append({"function": function, "args": list(args),
                          "gas": gas, "gas_price": gas_price})
        if self.send_error:
            raise self.send_error
        return None if self.no_receipt else self.receipt


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "ledger.db")
    yield database
    database.close()


def add_code(db, item_id="item-1", temp_owner=CALLER, code="0x" + "ee" * 32):
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO ownership_codes (ownership_code, item_id, item_owner, "
            "temp_owner, created_at) VALUES (?, ?, ?, ?, ?)",
            (code, item_id, OTHER, temp_owner, "2024-01-01T00:00:00+00:00"),
        )


# ---- claim_ownership ------------------------------------------------------

def test_claim_empty_code_is_bad_request(db):
    with pytest.raises(ApiError) as info:
        claim_ownership(db, FakeContract(), "", CALLER)
    assert info.value.status == 400
    assert info.value.message == "Item ID cannot be empty"


def test_claim_empty_caller_is_internal_error(db):
    with pytest.raises(ApiError) as info:
        claim_ownership(db, FakeContract(), "item-1", "")
    assert info.value.status == 500
    assert info.value.message == "Internal server error: Caller address cannot be empty"


def test_claim_invalid_caller(db):
    with pytest.raises(ApiError) as info:
        claim_ownership(db, FakeContract(), "item-1", "0xnothex")
    assert info.value.status == 400
    assert info.value.message == "Invalid caller address"


def test_claim_unknown_item(db):
    with pytest.raises(ApiError) as info:
        claim_ownership(db, FakeContract(), "item-1", CALLER)
    assert info.value.status == 404
    assert info.value.message == "Item ID not found"


def test_claim_wrong_temp_owner(db):
    add_code(db, temp_owner=OTHER)
    contract = FakeContract()
    with pytest.raises(ApiError) as info:
        claim_ownership(db, contract, "item-1", CALLER)
    assert info.value.status == 500
    assert info.value.message == "Internal server error: Caller is not the temp_owner"
    assert contract.sent == []


def test_claim_success_sends_transaction(db):
    add_code(db)
    contract = FakeContract(estimate=100_000, price=5)
    result = claim_ownership(db, contract, "item-1", CALLER)
    assert result == {"transaction_hash": TX_HASH}
    (sent,) = contract.sent
    assert sent["function"] == "newOwnerClaimOwnership"
    assert sent["args"] == ["item-1", to_checksum_address(CALLER)]
    assert sent["gas"] == 120_000
    assert sent["gas_price"] == 5
    assert contract.balance_queries == [WALLET]


def test_claim_matches_temp_owner_case_insensitively(db):
    add_code(db, temp_owner=CALLER.upper().replace("0X", "0x"))
    result = claim_ownership(db, FakeContract(), "item-1", CALLER)
    assert result["transaction_hash"] == TX_HASH


def test_claim_gas_price_fallback(db):
    add_code(db)
    contract = FakeContract(price_error=ContractRevert("node down"))
    claim_ownership(db, contract, "item-1", CALLER)
    assert contract.sent[0]["gas_price"] == DEFAULT_GAS_PRICE


def test_claim_insufficient_funds(db):
    add_code(db)
    contract = FakeContract(balance=1)
    with pytest.raises(ApiError) as info:
        claim_ownership(db, contract, "item-1", CALLER)
    assert info.value.status == 500
    assert info.value.message.startswith(
        "Internal server error: Insufficient funds: have 1 wei, need "
    )
    assert contract.sent == []


@pytest.mark.parametrize(
    "revert, status, message",
    [
        ("ADDRESS_ZERO(0x0000000000000000000000000000000000000000)", 400,
         "Caller address cannot be zero"),
        ("AUTHENTICITY_NOT_SET()", 500, "Authenticity contract not set"),
    ],
)
def test_claim_estimate_reverts(db, revert, status, message):
    add_code(db)
    contract = FakeContract(estimate_error=ContractRevert(revert))
    with pytest.raises(ApiError) as info:
        claim_ownership(db, contract, "item-1", CALLER)
    assert info.value.status == status
    assert info.value.message == message


def test_claim_missing_receipt(db):
    add_code(db)
    with pytest.raises(ApiError) as info:
        claim_ownership(db, FakeContract(no_receipt=True), "item-1", CALLER)
    assert info.value.status == 500
    assert info.value.message == "Internal server error: Transaction receipt not found"


def test_claim_send_failure(db):
    add_code(db)
    contract = FakeContract(send_error=ContractRevert("nonce too low"))
    with pytest.raises(ApiError) as info:
        claim_ownership(db, contract, "item-1", CALLER)
    assert info.value.message == (
        "Internal server error: Failed to send transaction: nonce too low"
    )


# ---- create_item ----------------------------------------------------------

@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"caller": ""}, "Caller address cannot be empty"),
        ({"name": ""}, "Certificate name cannot be empty"),
        ({"unique_id": ""}, "Certificate unique ID cannot be empty"),
        ({"manufacturer_name": ""}, "Manufacturer name cannot be empty"),
    ],
)
def test_create_empty_fields(kwargs, message):
    args = {"caller": CALLER, "name": "Widget", "unique_id": "item123",
            "metadata": ["color: blue"], "manufacturer_name": "Acme Corp"}
    args.update(kwargs)
    contract = FakeContract()
    with pytest.raises(ApiError) as info:
        create_item(contract, **args)
    assert info.value.status == 500
    assert info.value.message == f"Internal server error: {message}"
    assert contract.sent == []


def test_create_invalid_caller():
    with pytest.raises(ApiError) as info:
        create_item(FakeContract(), "0x1234", "Widget", "item123", [], "Acme Corp")
    assert info.value.status == 400
    assert info.value.message == "Caller address is invalid"


def test_create_success_sends_certificate():
    contract = FakeContract(price=7)
    metadata = ["color: blue", "size: medium"]
    result = create_item(contract, CALLER, "Widget", "item123", metadata, "Acme Corp")
    assert result == {"transaction_hash": TX_HASH}
    (sent,) = contract.sent
    assert sent["function"] == "createItem"
    assert sent["gas"] is None
    assert sent["gas_price"] == 7
    caller_arg, cert, maker = sent["args"]
    assert caller_arg == to_checksum_address(CALLER)
    assert maker == "Acme Corp"
    assert cert == ("Widget", "item123", "12345", 123456789,
                    to_checksum_address(ITEM_OWNER), ITEM_METADATA_HASH, metadata)


def test_create_does_not_require_funds():
    contract = FakeContract(balance=0)
    result = create_item(contract, CALLER, "Widget", "item123", [], "Acme Corp")
    assert result["transaction_hash"] == TX_HASH
    assert contract.balance_queries == [WALLET]


@pytest.mark.parametrize(
    "revert, status, message",
    [
        ("UNAUTHORIZED_CALLER(0x0000000000000000000000000000000000000001)", 403,
         "Caller not authorized to create item"),
        ("ADDRESS_ZERO(0x0000000000000000000000000000000000000000)", 400,
         "Caller or owner address cannot be zero"),
        ("AUTHENTICITY_NOT_SET()", 500, "Authenticity contract not set"),
    ],
)
def test_create_send_reverts(revert, status, message):
    contract = FakeContract(send_error=ContractRevert(revert))
    with pytest.raises(ApiError) as info:
        create_item(contract, CALLER, "Widget", "item123", [], "Acme Corp")
    assert info.value.status == status
    assert info.value.message == message


def test_create_balance_failure():
    contract = FakeContract(balance_error=OSError("connection refused"))
    with pytest.raises(ApiError) as info:
        create_item(contract, CALLER, "Widget", "item123", [], "Acme Corp")
    assert info.value.status == 500
    assert info.value.message == (
        "Internal server error: Failed to check wallet balance: connection refused"
    )


def test_create_gas_price_fallback():
    contract = FakeContract(price_error=ContractRevert("unavailable"))
    create_item(contract, CALLER, "Widget", "item123", [], "Acme Corp")
    assert contract.sent[0]["gas_price"] == DEFAULT_GAS_PRICE


# ---- generate_qr_code -----------------------------------------------------

def test_generate_qr_code_returns_empty_body():
    certificate = {"name": "Widget", "unique_id": "item123", "signature": "0x00"}
    assert generate_qr_code(certificate) == ""