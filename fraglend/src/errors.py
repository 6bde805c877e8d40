"""Error taxonomy shared by the pricing engine and the collateral ledger.

Every error raised by this package derives from :class:`FragLendError`.
Validation, authorization and state errors are raised before any mutation
or collaborator call. Collaborator failures propagate unchanged (or wrapped
in :class:`CollaboratorFailure` by the web3/httpx adapters) and abort the
enclosing operation without a partial state change.

Price unavailability has no error type: the pricing
engine degrades to a fallback source or to 0 instead of raising.
"""


class FragLendError(Exception):
    """Base exception for all fraglend errors."""

    pass


class ValidationError(FragLendError):
    """Raised when call arguments are malformed."""

    pass


class LengthMismatch(ValidationError):
    """Raised when two parallel inputs (or an input and a sequence) differ in length."""

    pass


class InvalidIndexOrder(ValidationError):
    """Raised when an index list is not strictly increasing."""

    pass


class IndexOutOfBounds(ValidationError):
    """Raised when an index does not address an element of the sequence.

    :ivar index: Offending index.
    :ivar length: Length of the addressed sequence.
    """

    def __init__(self, index: int, length: int):
        """Initialize the error.

        :param index: Offending index.
        :param length: Length of the addressed sequence.
        """
        self.index = index
        self.length = length
        super().__init__(f"Index {index} out of bounds for length {length}")


class DuplicateIndex(ValidationError):
    """Raised when a permutation targets the same index twice."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Index {index} appears more than once")


class AmbiguousRedemptionArgs(ValidationError):
    """Raised when redeem_verify does not get exactly one nonzero amount."""

    pass


class EmptyInput(ValidationError):
    """Raised when an operation requires at least one element."""

    pass


class InvalidConfiguration(ValidationError):
    """Raised when an administrative setter receives an out-of-range value."""

    pass


class AuthorizationError(FragLendError):
    """Raised when the caller lacks the capability for an operation."""

    pass


class UnauthorizedCaller(AuthorizationError):
    """Raised when a caller identity is not permitted for an operation.

    :ivar caller: Rejected caller identity.
    :ivar operation: Operation tag that was attempted.
    """

    def __init__(self, caller: str, operation: str):
        self.caller = caller
        self.operation = operation
        super().__init__(f"Caller {caller} is not authorized for {operation}")


class StateError(FragLendError):
    """Raised when the current state does not permit the operation."""

    pass


class AssetNotFound(StateError):
    """Raised when a market's underlying asset resolves to the zero identifier."""

    pass


class NotListed(StateError):
    """Raised when depositing into a collateral type that is not listed."""

    pass


class UnknownCollateral(StateError):
    """Raised when a collateral type or market has never been registered."""

    pass


class InsufficientCollateralBacking(StateError):
    """Raised when a redemption would leave held items without backing.

    :ivar remaining: Underlying balance left after the redemption.
    :ivar required: Underlying balance required by the items still held.
    """

    def __init__(self, remaining: int, required: int):
        self.remaining = remaining
        self.required = required
        super().__init__(
            f"Redemption leaves {remaining} underlying, {required} required"
        )


class CollaboratorFailure(FragLendError):
    """Raised by adapters when an external call (contract, HTTP) fails."""

    pass
