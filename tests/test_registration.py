import pytest

from trueledger.contract import ContractRevert, TransactionReceipt
from trueledger.db import ApiError
from trueledger.hashing import to_checksum_address
from trueledger.registration import set_authenticity, user_register

WALLET = "0x1234567890abcdef1234567890abcdef12345678"
TX_HASH = "0x" + "AB" * 32
AUTH_ADDRESS = "0xabcdef1234567890abcdef1234567890abcdef12"


class FakeContract:
    def __init__(self, balance=10**30, estimate=100, price=7, send_error=None,
                 receipt=True, price_error=False, estimate_error=None):
        self.balance = balance
        self.estimate = estimate
        self.price = price
        self.send_error = send_error
        self.receipt = receipt
        self.price_error = price_error
        self.estimate_error = estimate_error
        self.sent = []

    def wallet_address(self):
        return WALLET

    def get_balance(self, address):
        assert address == WALLET
        return self.balance

    def gas_price(self):
        if self.price_error:
            raise ContractRevert("node down")
        return self.price

    def estimate_gas(self, function, args):
        if self.estimate_error:
            raise ContractRevert(self.estimate_error)
        return self.estimate

    def send(self, function, args, gas=None, gas_price=None):
        if self.send_error:
            raise ContractRevert(self.send_error)
        self.sent.append((function, list(args), gas, gas_price))
        if not self.receipt:
            return None
        return TransactionReceipt(transaction_hash=TX_HASH, block_number=1, status=1)


def test_register_success_returns_lowercase_hash():
    contract = FakeContract()
    result = user_register(contract, "alice")
    assert result == {"transaction_hash": TX_HASH.lower()}
    assert contract.sent[0][0] == "userRegisters"
    assert contract.sent[0][1] == ["alice"]


def test_register_buffers_gas_estimate():
    contract = FakeContract(estimate=100, price=7)
    user_register(contract, "alice")
    _, _, gas, price = contract.sent[0]
    assert gas == 120
    assert price == 7


def test_register_gas_price_fallback():
    contract = FakeContract(price_error=True)
    user_register(contract, "alice")
    assert contract.sent[0][3] == 2_000_000_000


def test_register_empty_username():
    with pytest.raises(ApiError) as info:
        user_register(FakeContract(), "")
    assert info.value.status == 400
    assert info.value.message == "Username cannot be empty"


def test_register_username_length_limit():
    contract = FakeContract()
    assert user_register(contract, "a" * 32)["transaction_hash"] == TX_HASH.lower()
    with pytest.raises(ApiError) as info:
        user_register(contract, "a" * 33)
    assert info.value.status == 400
    assert info.value.message == "Username too long (max 32 characters)"


def test_register_insufficient_funds():
    contract = FakeContract(balance=0)
    with pytest.raises(ApiError) as info:
        user_register(contract, "alice")
    assert info.value.status == 500
    assert info.value.message.startswith("Internal server error: Insufficient funds")
    assert contract.sent == []


@pytest.mark.parametrize(
    "revert, status, message",
    [
        ("ADDRESS_ZERO(0x0000000000000000000000000000000000000000)", 400,
         "Caller address cannot be zero"),
        ("AUTHENTICITY_NOT_SET()", 500, "Authenticity contract not set"),
    ],
)
def test_register_revert_mapping(revert, status, message):
    with pytest.raises(ApiError) as info:
        user_register(FakeContract(send_error=revert), "alice")
    assert info.value.status == status
    assert info.value.message == message


def test_register_estimate_failure_is_internal():
    with pytest.raises(ApiError) as info:
        user_register(FakeContract(estimate_error="boom"), "alice")
    assert info.value.status == 500
    assert info.value.message == "Internal server error: Gas estimation failed: boom"


def test_register_missing_receipt():
    with pytest.raises(ApiError) as info:
        user_register(FakeContract(receipt=False), "alice")
    assert info.value.status == 500
    assert info.value.message == "Internal server error: Transaction receipt not found"


def test_set_authenticity_success():
    contract = FakeContract()
    result = set_authenticity(contract, AUTH_ADDRESS)
    assert result == {"transaction_hash": TX_HASH.lower()}
    function, args, _, _ = contract.sent[0]
    assert function == "setAuthenticity"
    assert args == [to_checksum_address(AUTH_ADDRESS)]


@pytest.mark.parametrize("address", ["", "0x1234", "not an address", "0x" + "zz" * 20])
def test_set_authenticity_invalid_address(address):
    contract = FakeContract()
    with pytest.raises(ApiError) as info:
        set_authenticity(contract, address)
    assert info.value.status == 400
    assert info.value.message == "Invalid authenticity address"
    assert contract.sent == []


def test_set_authenticity_only_owner():
    contract = FakeContract(send_error=f"ONLY_OWNER({WALLET})")
    with pytest.raises(ApiError) as info:
        set_authenticity(contract, AUTH_ADDRESS)
    assert info.value.status == 403
    assert info.value.message == "Caller is not the contract owner"


def test_set_authenticity_insufficient_funds():
    with pytest.raises(ApiError) as info:
        set_authenticity(FakeContract(balance=1), AUTH_ADDRESS)
    assert info.value.status == 500
    assert "Insufficient funds" in info.value.message