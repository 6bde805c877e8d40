"""Unit tests for permit signing and recovery."""

from eth_account import Account

from fraglend.src.Permit import build_permit_typed_data, recover_permit_signer, sign_permit

from conftest import LEDGER, addr

PRIVATE_KEY = "0x" + "11" * 32
VAULT = addr(0x7A017)


def permit_fields(**overrides) -> dict:
    fields = {
        "token_name": "Fractional Punks",
        "chain_id": 1,
        "verifying_contract": VAULT,
        "owner": Account.from_key(PRIVATE_KEY).address,
        "spender": LEDGER,
        "value": 300,
        "nonce": 0,
        "deadline": 1_900_000_000,
    }
    fields.update(overrides)
    return fields


class TestPermit:
    """Test EIP-712 permit messages."""

    def test_typed_data_shape(self) -> None:
        """The message carries the Permit struct and domain."""
        data = build_permit_typed_data(**permit_fields())
        assert data["primaryType"] == "Permit"
        assert data["domain"]["verifyingContract"] == VAULT
        assert data["domain"]["version"] == "1"
        assert data["message"]["value"] == 300

    def test_signature_length(self) -> None:
        """Signatures are 65 bytes."""
        assert len(sign_permit(PRIVATE_KEY, **permit_fields())) == 65

    def test_recover_signer(self) -> None:
        """The signer is recovered from the signature."""
        signature = sign_permit(PRIVATE_KEY, **permit_fields())
        owner = Account.from_key(PRIVATE_KEY).address
        assert recover_permit_signer(signature, **permit_fields()) == owner

    def test_tampered_value_recovers_other_address(self) -> None:
        """A different amount does not verify against the owner."""
        signature = sign_permit(PRIVATE_KEY, **permit_fields())
        owner = Account.from_key(PRIVATE_KEY).address
        assert recover_permit_signer(signature, **permit_fields(value=301)) != owner

    def test_domain_binds_chain(self) -> None:
        """Signatures do not carry over to another chain."""
        signature = sign_permit(PRIVATE_KEY, **permit_fields())
        owner = Account.from_key(PRIVATE_KEY).address
        assert recover_permit_signer(signature, **permit_fields(chain_id=5)) != owner
