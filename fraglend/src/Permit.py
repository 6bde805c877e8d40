"""Permit: ERC-2612 share-token permits as EIP-712 typed data.

Used by holders to authorize :meth:`CollateralLedger.redeem_with_permit`
without a separate approval, and by share-token implementations to check
who signed a permit.

.. code-block:: python

    >>> signature = sign_permit(
    ...     private_key, token_name="Vault", chain_id=1,
    ...     verifying_contract=vault, owner=alice, spender=ledger,
    ...     value=300, nonce=0, deadline=1_900_000_000,
    ... )
    >>> recover_permit_signer(signature, token_name="Vault", ...) == alice
    True
"""

from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data

from .identifiers import to_address

PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def build_permit_typed_data(
    *,
    token_name: str,
    chain_id: int,
    verifying_contract: str,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    version: str = "1",
) -> dict[str, Any]:
    """Build the EIP-712 message of a permit.

    :param token_name: ``name()`` of the share token (part of the domain).
    :param chain_id: Chain id of the domain.
    :param verifying_contract: Share token address.
    :param owner: Account granting the allowance.
    :param spender: Account receiving the allowance.
    :param value: Allowance amount.
    :param nonce: Owner's current permit nonce.
    :param deadline: Unix time after which the permit is void.
    :param version: Domain version (default ``"1"``).
    :returns: Typed-data dict accepted by ``encode_typed_data``.
    """
    return {
        "types": PERMIT_TYPES,
        "primaryType": "Permit",
        "domain": {
            "name": token_name,
            "version": version,
            "chainId": chain_id,
            "verifyingContract": to_address(verifying_contract),
        },
        "message": {
            "owner": to_address(owner),
            "spender": to_address(spender),
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    }


def sign_permit(private_key: str | bytes, **fields: Any) -> bytes:
    """Sign a permit; ``fields`` are those of :func:`build_permit_typed_data`.

    :returns: 65-byte ``r || s || v`` signature.
    """
    message = encode_typed_data(full_message=build_permit_typed_data(**fields))
    signed = Account.sign_message(message, private_key=private_key)
    return bytes(signed.signature)


def recover_permit_signer(signature: bytes, **fields: Any) -> str:
    """Recover the address that signed a permit.

    :raises ValueError: If the signature is malformed.
    """
    message = encode_typed_data(full_message=build_permit_typed_data(**fields))
    return Account.recover_message(message, signature=signature)
