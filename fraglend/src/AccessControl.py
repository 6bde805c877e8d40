"""AccessControl: capability checks keyed by caller identity.

A capability is an operation tag. The owner implicitly holds every
capability; other identities hold only the capabilities granted to them.
The check is independent of how the caller identity was authenticated.

.. code-block:: python

    >>> acl = AccessControl(owner="0x" + "aa" * 20)
    >>> acl.grant(acl.owner, Capability.REPORT, "0x" + "bb" * 20)
    >>> acl.has("0x" + "bb" * 20, Capability.REPORT)
    True
"""

from __future__ import annotations

import logging
from enum import Enum

from .errors import UnauthorizedCaller
from .identifiers import to_address

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Operation tags that can be granted to a caller."""

    ADMIN = "admin"
    REPORT = "report"
    CONFIGURE_ORACLE = "configure_oracle"
    CONFIGURE_SOURCES = "configure_sources"
    CONFIGURE_COLLATERAL = "configure_collateral"


class AccessControl:
    """Owner plus per-capability grants.

    :ivar owner: Identity that holds every capability.
    """

    def __init__(self, owner: str) -> None:
        self.owner = to_address(owner)
        self._grants: dict[Capability, set[str]] = {c: set() for c in Capability}

    def has(self, caller: str, capability: Capability) -> bool:
        """Check whether ``caller`` holds ``capability``."""
        caller = to_address(caller)
        if caller == self.owner:
            return True
        return caller in self._grants[capability]

    def require(self, caller: str, capability: Capability) -> None:
        """Reject the call unless ``caller`` holds ``capability``.

        :raises UnauthorizedCaller: If the capability is missing.
        """
        if not self.has(caller, capability):
            raise UnauthorizedCaller(caller, capability.value)

    def grant(self, caller: str, capability: Capability, account: str) -> None:
        """Grant ``capability`` to ``account``. Requires ADMIN."""
        self.require(caller, Capability.ADMIN)
        self._grants[capability].add(to_address(account))
        logger.info(f"Granted {capability.value} to {account}")

    def revoke(self, caller: str, capability: Capability, account: str) -> None:
        """Revoke ``capability`` from ``account``. Requires ADMIN."""
        self.require(caller, Capability.ADMIN)
        self._grants[capability].discard(to_address(account))
        logger.info(f"Revoked {capability.value} from {account}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Hand every implicit capability to ``new_owner``. Requires ownership."""
        if to_address(caller) != self.owner:
            raise UnauthorizedCaller(caller, "transfer_ownership")
        logger.info(f"Ownership transferred from {self.owner} to {new_owner}")
        self.owner = to_address(new_owner)
