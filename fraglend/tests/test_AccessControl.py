"""Unit tests for AccessControl."""

import pytest

from fraglend.src.AccessControl import AccessControl, Capability
from fraglend.src.errors import AuthorizationError, UnauthorizedCaller

from conftest import ADMIN, ALICE, BOB


class TestAccessControl:
    """Test capability grants."""

    def test_owner_holds_everything(self) -> None:
        """The owner implicitly holds every capability."""
        acl = AccessControl(ADMIN)
        assert all(acl.has(ADMIN, capability) for capability in Capability)

    def test_grant_and_revoke(self) -> None:
        """Granted capabilities can be revoked."""
        acl = AccessControl(ADMIN)
        acl.grant(ADMIN, Capability.REPORT, ALICE)
        assert acl.has(ALICE, Capability.REPORT)
        assert not acl.has(ALICE, Capability.CONFIGURE_ORACLE)

        acl.revoke(ADMIN, Capability.REPORT, ALICE)
        assert not acl.has(ALICE, Capability.REPORT)

    def test_lowercase_identity(self) -> None:
        """Identities are compared in checksummed form."""
        acl = AccessControl(ADMIN)
        acl.grant(ADMIN, Capability.REPORT, ALICE.lower())
        assert acl.has(ALICE, Capability.REPORT)

    def test_require(self) -> None:
        """Missing capabilities raise with caller and operation."""
        acl = AccessControl(ADMIN)
        with pytest.raises(UnauthorizedCaller) as exc_info:
            acl.require(BOB, Capability.CONFIGURE_SOURCES)
        assert exc_info.value.caller == BOB
        assert exc_info.value.operation == "configure_sources"
        assert isinstance(exc_info.value, AuthorizationError)

    def test_grant_requires_admin(self) -> None:
        """Only admins may grant."""
        acl = AccessControl(ADMIN)
        with pytest.raises(UnauthorizedCaller):
            acl.grant(ALICE, Capability.REPORT, ALICE)

    def test_delegated_admin(self) -> None:
        """An ADMIN grant lets another identity manage capabilities."""
        acl = AccessControl(ADMIN)
        acl.grant(ADMIN, Capability.ADMIN, ALICE)
        acl.grant(ALICE, Capability.REPORT, BOB)
        assert acl.has(BOB, Capability.REPORT)

    def test_transfer_ownership(self) -> None:
        """Ownership moves every implicit capability."""
        acl = AccessControl(ADMIN)
        acl.transfer_ownership(ADMIN, ALICE)
        assert acl.owner == ALICE
        assert acl.has(ALICE, Capability.ADMIN)
        assert not acl.has(ADMIN, Capability.ADMIN)

    def test_transfer_ownership_requires_owner(self) -> None:
        """Admins that are not the owner cannot transfer ownership."""
        acl = AccessControl(ADMIN)
        acl.grant(ADMIN, Capability.ADMIN, ALICE)
        with pytest.raises(UnauthorizedCaller):
            acl.transfer_ownership(ALICE, BOB)
