"""Unit tests for invoice money math."""

from decimal import Decimal
from types import SimpleNamespace

from hospital_billing.services.billing_math import (
    D,
    compute_financials,
    discount_amount,
    invoice_financials,
    line_total,
    money2,
    sum_line_totals,
)


class TestHelpers:
    def test_d_tolerates_none_and_garbage(self):
        assert D(None) == Decimal("0")
        assert D("") == Decimal("0")
        assert D("abc") == Decimal("0")
        assert D(12.5) == Decimal("12.5")

    def test_money2_rounds_half_up(self):
        assert money2("2.345") == Decimal("2.35")
        assert money2("2.344") == Decimal("2.34")
        assert money2("-2.345") == Decimal("-2.35")

    def test_line_total_and_sum(self):
        assert line_total(3, "1500.00") == Decimal("4500.00")
        assert sum_line_totals(["10.10", Decimal("5"), None]) == Decimal("15.10")


class TestDiscount:
    def test_percentage(self):
        assert discount_amount(1000, "percentage", 10) == Decimal("100")

    def test_fixed_capped_at_subtotal(self):
        assert discount_amount(500, "fixed", 800) == Decimal("500")

    def test_none_or_null_type_gives_zero(self):
        assert discount_amount(1000, "none", 50) == Decimal("0")
        assert discount_amount(1000, None, 50) == Decimal("0")

    def test_zero_subtotal(self):
        assert discount_amount(0, "percentage", 10) == Decimal("0")


class TestComputeFinancials:
    def test_discount_then_tax_on_discounted_amount(self):
        f = compute_financials(
            Decimal("1000.00"),
            discount_type="percentage",
            discount_value=10,
            include_tax=True,
            tax_rate=18,
        ).rounded()
        assert f.discount == Decimal("100.00")
        assert f.discounted_subtotal == Decimal("900.00")
        assert f.tax == Decimal("162.00")
        assert f.payable == Decimal("1062.00")
        assert f.balance == Decimal("1062.00")

    def test_fixed_discount_larger_than_subtotal(self):
        f = compute_financials(500, discount_type="fixed", discount_value=800).rounded()
        assert f.discount == Decimal("500.00")
        assert f.payable == Decimal("0.00")
        assert f.balance == Decimal("0.00")

    def test_tax_not_applied_when_flag_off(self):
        f = compute_financials(1000, include_tax=False, tax_rate=18).rounded()
        assert f.tax == Decimal("0.00")
        assert f.payable == Decimal("1000.00")

    def test_rounding_happens_only_at_output(self):
        f = compute_financials(Decimal("100.005"))
        assert f.payable == Decimal("100.005")
        assert f.rounded().payable == Decimal("100.01")

    def test_overpayment_gives_negative_balance(self):
        f = compute_financials(1000, paid_amount=1200).rounded()
        assert f.balance == Decimal("-200.00")

    def test_partial_payment(self):
        f = compute_financials(1000, include_tax=True, tax_rate=5, paid_amount=400)
        assert f.rounded().balance == Decimal("650.00")

    def test_as_dict_is_rounded(self):
        out = compute_financials(Decimal("10.005")).as_dict()
        assert out["subtotal"] == Decimal("10.01")
        assert set(out) == {
            "subtotal", "discount", "discounted_subtotal", "tax", "payable", "paid", "balance"
        }


def test_invoice_financials_reads_invoice_columns():
    inv = SimpleNamespace(
        total_amount=Decimal("2000.00"),
        discount_type="fixed",
        discount_value=Decimal("200.00"),
        include_tax=True,
        tax_rate=Decimal("18.00"),
        paid_amount=Decimal("500.00"),
    )
    f = invoice_financials(inv).rounded()
    assert f.discounted_subtotal == Decimal("1800.00")
    assert f.tax == Decimal("324.00")
    assert f.payable == Decimal("2124.00")
    assert f.balance == Decimal("1624.00")
