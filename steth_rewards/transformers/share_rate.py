"""
Fixed-point conversion between stETH shares and ether.

Everything is exact integer math. Division truncates toward zero, including for
negative numerators (outgoing transfers), so results match the on-chain
uint256 math and the reference bigint arithmetic bit for bit.
"""

PRECISION = 10**27


def _div_trunc(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return -quotient if (numerator < 0) != (denominator < 0) else quotient


def shares_to_steth(shares: int, total_ether: int, total_shares: int, precision: int = PRECISION) -> int:
    # precision is unused by the formula but kept so both helpers share a signature
    if total_shares <= 0:
        return 0
    return _div_trunc(shares * total_ether, total_shares)


def calc_share_rate(total_ether: int, total_shares: int, precision: int = PRECISION) -> int:
    if total_shares <= 0:
        return 0
    return _div_trunc(total_ether * precision, total_shares)
