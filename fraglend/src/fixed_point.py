"""18-decimal fixed-point arithmetic helpers.

All prices and weights handled by the pricing engine are plain ``int`` values
scaled by :data:`ONE`. Division truncates toward zero for non-negative
operands, matching integer contract arithmetic.
"""

from decimal import Decimal, localcontext

# Number of decimals of every fixed-point value in this package.
DECIMALS = 18

# Fixed-point representation of 1.0.
ONE = 10**DECIMALS


def rescale(value: int, from_decimals: int, to_decimals: int = DECIMALS) -> int:
    """Change the decimal precision of an integer amount.

    :param value: Amount expressed with ``from_decimals`` decimals.
    :param from_decimals: Current precision.
    :param to_decimals: Target precision (default 18).
    :returns: Amount expressed with ``to_decimals`` decimals.

    .. code-block:: python

        >>> rescale(2_000_00000000, 8)
        2000000000000000000000
    """
    return value * 10**to_decimals // 10**from_decimals


def mul(a: int, b: int) -> int:
    """Multiply two fixed-point values."""
    return a * b // ONE


def div(a: int, b: int) -> int:
    """Divide two fixed-point values.

    :raises ZeroDivisionError: If ``b`` is zero.
    """
    return a * ONE // b


def from_decimal(value: Decimal | str | float) -> int:
    """Convert a human-readable number to fixed point.

    Strings are preferred over floats to avoid binary rounding.

    :param value: Number such as ``"0.25"``.
    :returns: Fixed-point integer.

    .. code-block:: python

        >>> from_decimal("0.25")
        250000000000000000
    """
    with localcontext() as ctx:
        ctx.prec = 60
        return int(Decimal(str(value)) * ONE)


def to_decimal(value: int) -> Decimal:
    """Convert a fixed-point integer to a Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = 60
        return Decimal(value) / ONE


def tick_to_price(tick: int) -> int:
    """Convert a pool tick to a fixed-point price ratio (``1.0001 ** tick``).

    :param tick: Pool tick, possibly negative.
    :returns: Price of token0 denominated in token1, 18 decimals.
    """
    with localcontext() as ctx:
        ctx.prec = 80
        return int(Decimal("1.0001") ** tick * ONE)
