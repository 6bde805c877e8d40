"""Address identifiers used as asset, market, account and feed keys."""

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_address(value: str) -> str:
    """Normalize an identifier to its EIP-55 checksummed form.

    :param value: Hex address in any case.
    :returns: Checksummed address.
    :raises ValueError: If ``value`` is not a 20-byte hex address.
    """
    return Web3.to_checksum_address(value)


def is_zero_address(value: str | None) -> bool:
    """Check whether an identifier is unset."""
    return not value or int(value, 16) == 0
