"""
Tests for the revenue split calculator.

Tests cover:
- Fee and net for typical shares
- Half-up rounding of the platform fee
- Boundary shares (0 and 10000 bps)
- Rejection of out-of-range or non-integer input
"""

import pytest

from settlement.calculator import Split, round_half_up_div, split
from settlement.exceptions import InvalidRevenueShareError, SettlementValidationError


# =============================================================================
# Split Tests
# =============================================================================


class TestSplit:
    """Tests for split()."""

    def test_seventy_percent_share(self):
        """Creator keeps 70% of a $100 sale."""
        assert split(10_000, 7_000) == Split(fee_minor=3000, net_minor=7000)

    def test_fee_rounds_half_up(self):
        """A fee of exactly half a cent rounds up."""
        # 1 * 5000 / 10000 = 0.5 -> 1
        assert split(1, 5_000) == Split(fee_minor=1, net_minor=0)
        # 3 * 5000 / 10000 = 1.5 -> 2
        assert split(3, 5_000) == Split(fee_minor=2, net_minor=1)

    def test_fee_rounds_down_below_half(self):
        """999 * 3000 / 10000 = 299.7 -> 300; 1001 * 3000 / 10000 = 300.3 -> 300."""
        assert split(999, 7_000).fee_minor == 300
        assert split(1001, 7_000).fee_minor == 300

    def test_full_share_has_no_fee(self):
        assert split(2900, 10_000) == Split(fee_minor=0, net_minor=2900)

    def test_zero_share_keeps_everything_as_fee(self):
        assert split(2900, 0) == Split(fee_minor=2900, net_minor=0)

    def test_zero_gross(self):
        assert split(0, 7_000) == Split(fee_minor=0, net_minor=0)

    @pytest.mark.parametrize(
        "gross,bps",
        [(1, 1), (7, 3333), (2900, 8500), (99_999, 6667), (123_456_789, 1)],
    )
    def test_fee_plus_net_equals_gross(self, gross, bps):
        """Integer arithmetic never loses or creates a minor unit."""
        result = split(gross, bps)
        assert result.fee_minor + result.net_minor == gross
        assert result.fee_minor >= 0
        assert result.net_minor >= 0

    def test_large_amounts_are_exact(self):
        """No float rounding on amounts beyond 2**53."""
        gross = 2**60 + 1
        result = split(gross, 7_000)
        assert result.fee_minor + result.net_minor == gross


# =============================================================================
# Validation Tests
# =============================================================================


class TestSplitValidation:
    """Tests for split() input validation."""

    @pytest.mark.parametrize("bps", [-1, 10_001, 50_000])
    def test_bps_out_of_range(self, bps):
        with pytest.raises(InvalidRevenueShareError) as exc_info:
            split(10_000, bps)

        assert exc_info.value.error_code == "INVALID_REVENUE_SHARE"
        assert exc_info.value.details["revenue_share_bps"] == bps

    @pytest.mark.parametrize("bps", [70.0, "7000", None, True])
    def test_bps_must_be_integer(self, bps):
        with pytest.raises(InvalidRevenueShareError):
            split(10_000, bps)

    def test_negative_gross(self):
        with pytest.raises(InvalidRevenueShareError, match="must not be negative"):
            split(-1, 7_000)

    @pytest.mark.parametrize("gross", [100.5, "100", False])
    def test_gross_must_be_integer(self, gross):
        with pytest.raises(InvalidRevenueShareError):
            split(gross, 7_000)

    def test_is_a_validation_error(self):
        """Callers can treat a bad share like any other rejected input."""
        with pytest.raises(SettlementValidationError):
            split(100, 10_001)


class TestRoundHalfUpDiv:
    def test_exact_division(self):
        assert round_half_up_div(30_000_000, 10_000) == 3000

    def test_half_rounds_up(self):
        assert round_half_up_div(5, 10) == 1

    def test_below_half_rounds_down(self):
        assert round_half_up_div(4, 10) == 0
