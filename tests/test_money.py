"""
Tests for exact money arithmetic, with no floating point anywhere.

These tests verify:
  - Amounts normalize to 9 decimal places and convert exactly to nanos
  - Floats, NaN, infinity, over-precise and out-of-range values are rejected
  - Many small credits don't accumulate rounding errors, in either backend
  - Month arithmetic clamps to the end of shorter months
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from markethub.datetime_utils import add_months, ensure_utc
from markethub.exceptions import InvalidAmountError
from markethub.money import MAX_AMOUNT, MAX_NANOS, from_nanos, to_decimal, to_nanos
from markethub.services import credit_service

from helpers import ADMIN_ID, balance_of


class TestToDecimal:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2.5", Decimal("2.5")),
            (3, Decimal("3")),
            (Decimal("0.000000001"), Decimal("0.000000001")),
            ("-1.25", Decimal("-1.25")),
            ("9223372036.854775807", MAX_AMOUNT),
            ("-9223372036.854775807", -MAX_AMOUNT),
        ],
    )
    def test_valid(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize(
        "value",
        [0.1, "NaN", "-Infinity", "0.0000000001", "", "1e400000", None, "9223372036.854775808"],
    )
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            to_decimal(value)


class TestNanos:

    def test_exact_conversion(self):
        assert to_nanos(Decimal("2.5")) == 2_500_000_000
        assert to_nanos(Decimal("0.000000001")) == 1
        assert from_nanos(2_500_000_000) == Decimal("2.5")
        assert from_nanos(-1) == Decimal("-0.000000001")

    def test_large_value(self):
        amount = Decimal("123456789.123456789")
        assert from_nanos(to_nanos(amount)) == amount

    def test_ceiling_fits_signed_64_bit(self):
        assert to_nanos(MAX_AMOUNT) == MAX_NANOS == 2**63 - 1


class TestNoRoundingDrift:

    async def test_many_small_credits(self, storage):
        for _ in range(10):
            await credit_service.issue_credit(storage, ADMIN_ID, "42", "0.1")

        assert await balance_of(storage, "42") == Decimal("1.0")

    async def test_smallest_unit(self, storage):
        await credit_service.issue_credit(storage, ADMIN_ID, "42", "0.000000001")
        assert await balance_of(storage, "42") == Decimal("0.000000001")


class TestAddMonths:

    def test_clamps_day(self):
        start = datetime(2026, 1, 31, tzinfo=timezone.utc)
        assert add_months(start, 1) == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_leap_year(self):
        start = datetime(2028, 1, 31, tzinfo=timezone.utc)
        assert add_months(start, 1) == datetime(2028, 2, 29, tzinfo=timezone.utc)

    def test_crosses_year(self):
        start = datetime(2026, 11, 15, 9, 30, tzinfo=timezone.utc)
        assert add_months(start, 14) == datetime(2028, 1, 15, 9, 30, tzinfo=timezone.utc)

    def test_out_of_range_year(self):
        start = datetime(9999, 6, 1, tzinfo=timezone.utc)
        with pytest.raises(OverflowError):
            add_months(start, 12)

    def test_ensure_utc_on_naive(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert ensure_utc(naive).tzinfo == timezone.utc
