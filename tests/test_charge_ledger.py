"""Charge ledger behaviour against an in-memory repository."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

import pytest

from hospital_billing.services.billing_errors import (
    BillingNotFound,
    BillingValidationError,
    ChargeSourceError,
)
from hospital_billing.services.billing_repository import BillingRepository
from hospital_billing.services.charge_ledger import ChargeLedger
from hospital_billing.services.charge_sources import LabSource, MedicationSource, RoomSource

NOW = datetime(2026, 10, 18, 10, 30)


@dataclass
class FakeItem:
    id: int
    invoice_id: int
    item_type: str
    item_name: str
    item_description: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    reference_id: Optional[str]


class FakeRepository(BillingRepository):

    def __init__(self):
        self.invoices = {}
        self.items = {}
        self.rooms = []
        self.meds = []
        self.labs = []
        self.failing = set()
        self.set_total_calls = 0
        self._seq = 0
        # ids visible to plain reads; None means every row
        self.snapshot_ids = None

    # setup helpers
    def add_invoice(self, invoice_id=1, admission_id=10):
        inv = SimpleNamespace(id=invoice_id, admission_id=admission_id,
                              total_amount=Decimal("0"))
        self.invoices[invoice_id] = inv
        return inv

    def _check(self, what):
        if what in self.failing:
            raise ChargeSourceError(f"Failed to read {what}")

    # BillingRepository
    def get_invoice(self, invoice_id, *, lock=False):
        return self.invoices.get(invoice_id)

    def list_items(self, invoice_id, *, lock=False):
        rows = [i for i in self.items.values() if i.invoice_id == invoice_id]
        if not lock and self.snapshot_ids is not None:
            rows = [i for i in rows if i.id in self.snapshot_ids]
        return sorted(rows, key=lambda i: i.id)

    def get_item(self, item_id):
        return self.items.get(item_id)

    def room_segments(self, admission_id):
        self._check("rooms")
        return list(self.rooms)

    def medications(self, admission_id, only_ids=None):
        self._check("medications")
        ids = set(only_ids or [])
        return [m for m in self.meds if not ids or m.medication_id in ids]

    def billed_lab_reports(self, admission_id, only_ids=None):
        self._check("labs")
        ids = set(only_ids or [])
        return [r for r in self.labs if not ids or r.report_id in ids]

    def insert_item(self, invoice, fields, actor_id):
        if fields.reference_id is not None:
            for i in self.items.values():
                if (i.invoice_id, i.item_type, i.reference_id) == (
                        invoice.id, fields.item_type, fields.reference_id):
                    return None
        self._seq += 1
        item = FakeItem(self._seq, invoice.id, fields.item_type, fields.item_name,
                        fields.item_description, fields.quantity, fields.unit_price,
                        fields.total_price, fields.reference_id)
        self.items[item.id] = item
        return item

    def update_item(self, item, fields, actor_id):
        item.item_name = fields.item_name
        item.item_description = fields.item_description
        item.quantity = fields.quantity
        item.unit_price = fields.unit_price
        item.total_price = fields.total_price
        return item

    def delete_item(self, item):
        del self.items[item.id]

    def set_total(self, invoice, total, actor_id):
        self.set_total_calls += 1
        invoice.total_amount = total


def items_sum(repo, invoice_id=1):
    return sum((i.total_price for i in repo.list_items(invoice_id)), Decimal("0"))


@pytest.fixture
def repo():
    r = FakeRepository()
    r.add_invoice()
    r.rooms = [
        RoomSource(segment_id=1, room_type="general", rate_per_day=Decimal("1500"),
                   start_date=NOW - timedelta(days=4, hours=12),
                   end_date=NOW - timedelta(days=1, hours=12)),
        RoomSource(segment_id=2, room_type="icu", rate_per_day=Decimal("5000"),
                   start_date=NOW - timedelta(days=1, hours=12)),
    ]
    r.meds = [
        MedicationSource(medication_id=21, name="Paracetamol 500mg",
                         price_per_unit=Decimal("2.50"), units_per_dose=Decimal("2"),
                         doses_administered=6),
        MedicationSource(medication_id=22, name="Ondansetron 4mg",
                         price_per_unit=Decimal("12"), units_per_dose=Decimal("1"),
                         doses_administered=0),
    ]
    r.labs = [
        LabSource(report_id=31, report_title="Complete Blood Count",
                  test_type="Hematology", price=Decimal("450")),
    ]
    return r


@pytest.fixture
def clock_box():
    box = {"now": NOW}
    return box


@pytest.fixture
def ledger(repo, clock_box):
    return ChargeLedger(repo, clock=lambda: clock_box["now"])


class TestSyncAll:
    def test_materializes_every_category(self, ledger, repo):
        report = ledger.sync_all(1, actor_id=5)

        types = sorted(i.item_type for i in repo.list_items(1))
        assert types == ["lab", "medication", "room", "room"]
        assert report.added == {"room": 2, "medication": 1, "lab": 1}
        assert report.skipped_categories == []
        # 3 x 1500 + 2 x 5000 + 30 + 450
        assert report.total == Decimal("14980.00")
        assert repo.invoices[1].total_amount == items_sum(repo)

    def test_second_run_changes_nothing(self, ledger, repo):
        ledger.sync_all(1)
        before = [(i.id, i.total_price) for i in repo.list_items(1)]
        calls = repo.set_total_calls

        report = ledger.sync_all(1)

        assert [(i.id, i.total_price) for i in repo.list_items(1)] == before
        assert report.added == {}
        assert report.refreshed == 0
        assert repo.set_total_calls == calls

    def test_zero_charge_sources_are_skipped(self, ledger, repo):
        ledger.sync_all(1)
        refs = {i.reference_id for i in repo.list_items(1) if i.item_type == "medication"}
        assert refs == {"21"}

    def test_failed_category_is_reported_and_others_still_sync(self, ledger, repo):
        repo.failing.add("medications")

        report = ledger.sync_all(1)

        assert report.skipped_categories == ["medication"]
        assert report.added == {"room": 2, "lab": 1}
        assert repo.invoices[1].total_amount == items_sum(repo)

    def test_unknown_invoice(self, ledger):
        with pytest.raises(BillingNotFound):
            ledger.sync_all(999)


class TestRoomCharges:
    def test_compute_room_charges(self, ledger):
        rc = ledger.compute_room_charges(10)
        assert [s.days for s in rc.segments] == [3, 2]
        assert rc.total_days == 5
        assert rc.total == Decimal("14500")

    def test_open_segment_is_refreshed_as_days_accrue(self, ledger, repo, clock_box):
        ledger.sync_all(1)
        icu = next(i for i in repo.list_items(1) if i.reference_id == "2")
        assert icu.quantity == Decimal("2")

        clock_box["now"] = NOW + timedelta(days=1)
        report = ledger.sync_all(1)

        assert report.refreshed == 1
        assert report.added == {}
        assert icu.quantity == Decimal("3")
        assert icu.total_price == Decimal("15000")
        assert repo.invoices[1].total_amount == items_sum(repo)


class TestDedup:
    def test_stale_existing_list_does_not_duplicate(self, ledger, repo):
        inv = repo.invoices[1]
        ledger.sync_medication_charges(inv, [])
        # second caller still believes the invoice is empty
        out = ledger.sync_medication_charges(inv, [])

        meds = [i for i in repo.list_items(1) if i.item_type == "medication"]
        assert len(meds) == 1
        assert len(out) == 1
        assert inv.total_amount == items_sum(repo)

    def test_rows_committed_after_snapshot_count_toward_total(self, ledger, repo):
        # another session synced and committed first
        ledger.sync_all(1)
        committed = items_sum(repo)
        repo.invoices[1].total_amount = Decimal("0")
        # this session's plain reads predate that commit
        repo.snapshot_ids = set()

        report = ledger.sync_all(1)

        assert report.added == {}
        assert repo.invoices[1].total_amount == committed

    def test_only_ids_limits_the_sync(self, ledger, repo):
        repo.meds.append(
            MedicationSource(medication_id=23, name="Pantoprazole 40mg",
                             price_per_unit=Decimal("8"), units_per_dose=Decimal("1"),
                             doses_administered=3))
        inv = repo.invoices[1]
        ledger.sync_medication_charges(inv, [], only_ids=[23])
        assert [i.reference_id for i in repo.list_items(1)] == ["23"]


class TestSingleItemMutations:
    def test_custom_items_may_repeat(self, ledger, repo):
        ledger.add_custom_item(1, item_name="Nursing care", quantity=2, unit_price=250)
        ledger.add_custom_item(1, item_name="Nursing care", quantity=2, unit_price=250)

        assert len(repo.list_items(1)) == 2
        assert repo.invoices[1].total_amount == Decimal("1000")

    @pytest.mark.parametrize("kwargs", [
        {"item_name": "  ", "quantity": 1, "unit_price": 10},
        {"item_name": "Dressing", "quantity": 0, "unit_price": 10},
        {"item_name": "Dressing", "quantity": 1, "unit_price": -1},
    ])
    def test_custom_item_validation(self, ledger, repo, kwargs):
        with pytest.raises(BillingValidationError):
            ledger.add_custom_item(1, **kwargs)
        assert repo.list_items(1) == []

    def test_custom_item_on_missing_invoice(self, ledger):
        with pytest.raises(BillingNotFound):
            ledger.add_custom_item(42, item_name="X", quantity=1, unit_price=1)

    def test_update_item_recomputes_line_and_invoice(self, ledger, repo):
        item = ledger.add_custom_item(1, item_name="Physiotherapy", quantity=1,
                                      unit_price=600)
        ledger.update_item(item.id, quantity=3)

        assert item.total_price == Decimal("1800")
        assert repo.invoices[1].total_amount == Decimal("1800")

    def test_update_rejects_bad_quantity(self, ledger):
        item = ledger.add_custom_item(1, item_name="Physiotherapy", quantity=1,
                                      unit_price=600)
        with pytest.raises(BillingValidationError):
            ledger.update_item(item.id, quantity=0)

    def test_delete_item(self, ledger, repo):
        ledger.sync_all(1)
        lab = next(i for i in repo.list_items(1) if i.item_type == "lab")

        inv = ledger.delete_item(lab.id)

        assert inv.total_amount == Decimal("14530.00")
        assert inv.total_amount == items_sum(repo)

    def test_missing_item(self, ledger):
        with pytest.raises(BillingNotFound):
            ledger.update_item(404, quantity=1)
        with pytest.raises(BillingNotFound):
            ledger.delete_item(404)

    def test_recompute_total(self, ledger, repo):
        ledger.add_custom_item(1, item_name="Diet", quantity=4, unit_price=120)
        repo.invoices[1].total_amount = Decimal("1")
        assert ledger.recompute_total(1) == Decimal("480")
        assert repo.invoices[1].total_amount == Decimal("480")
