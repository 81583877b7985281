"""
Revenue split between the platform and a creator.

All amounts are integers in the minor currency unit (e.g. cents) and the
creator's share is expressed in basis points (10000 bps = 100%).

    >>> split(10_000, 7_000)
    Split(fee_minor=3000, net_minor=7000)

Only integer arithmetic is used, so fee_minor + net_minor == gross_minor
holds for every input.
"""

from __future__ import annotations

from typing import NamedTuple

from settlement.exceptions import InvalidRevenueShareError

BPS_DENOMINATOR = 10_000


class Split(NamedTuple):
    """Platform fee and creator net for one gross amount."""

    fee_minor: int
    net_minor: int


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Divide two non-negative integers, rounding halves up."""
    return (2 * numerator + denominator) // (2 * denominator)


def split(gross_minor: int, revenue_share_bps: int) -> Split:
    """
    Split a gross amount into platform fee and creator net.

    fee = round_half_up(gross * (10000 - bps) / 10000), net = gross - fee.

    Args:
        gross_minor: Gross amount in minor units (>= 0)
        revenue_share_bps: Creator's share in basis points, within [0, 10000]

    Returns:
        Split(fee_minor, net_minor)

    Raises:
        InvalidRevenueShareError: bps outside [0, 10000], or gross negative
            or not an integer
    """
    if isinstance(revenue_share_bps, bool) or not isinstance(revenue_share_bps, int):
        raise InvalidRevenueShareError(
            "revenue_share_bps must be an integer",
            details={"revenue_share_bps": repr(revenue_share_bps)},
        )
    if not 0 <= revenue_share_bps <= BPS_DENOMINATOR:
        raise InvalidRevenueShareError(
            f"revenue_share_bps must be within [0, {BPS_DENOMINATOR}]",
            details={"revenue_share_bps": revenue_share_bps},
        )
    if isinstance(gross_minor, bool) or not isinstance(gross_minor, int):
        raise InvalidRevenueShareError(
            "gross_minor must be an integer amount in minor units",
            details={"gross_minor": repr(gross_minor)},
        )
    if gross_minor < 0:
        raise InvalidRevenueShareError(
            "gross_minor must not be negative",
            details={"gross_minor": gross_minor},
        )

    fee_minor = round_half_up_div(
        gross_minor * (BPS_DENOMINATOR - revenue_share_bps), BPS_DENOMINATOR
    )
    return Split(fee_minor=fee_minor, net_minor=gross_minor - fee_minor)
