"""ContractUtility: Web3 initialization and ABI loading."""

import json
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder

NETWORKS = {
    "mainnet": "https://ethereum-rpc.publicnode.com",
    "sepolia": "https://ethereum-sepolia-rpc.publicnode.com",
    "localnet": "http://localhost:8545",
}

# Well-known first account of local development nodes.
LOCALNET_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


class ContractUtility:
    """Utility for Web3 connection and contract binding.

    :ivar network: Network RPC URL.
    :ivar w3: Configured Web3 instance.
    """

    def __init__(self, network_name: str, private_key: str | None = None) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to, or an RPC URL.
        :param private_key: Optional signing key. Localnet falls back to the
            well-known development key.
        """
        # RPC_URL env var overrides the default for the network
        self.network = os.environ.get("RPC_URL") or NETWORKS.get(network_name, network_name)

        self.w3 = Web3(Web3.HTTPProvider(self.network))
        if private_key is None and network_name == "localnet":
            private_key = LOCALNET_PRIVATE_KEY
        if private_key:
            account: LocalAccount = Account.from_key(private_key)
            self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
            self.w3.eth.default_account = account.address

    @staticmethod
    def get_abi(contract_name: str) -> list:
        """Load the ABI of a contract shipped in the package's ``abi`` folder.

        :param contract_name: ABI file stem (e.g., "PriceFeed").
        :returns: ABI as a list of entries.
        """
        abi_path = (Path(__file__).parent.parent / "abi" / f"{contract_name}.json").resolve()
        with open(abi_path, "r") as file:
            return json.load(file)

    def contract(self, contract_name: str, address: str) -> Contract:
        """Bind a shipped ABI to a deployed address."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_abi(contract_name),
        )
