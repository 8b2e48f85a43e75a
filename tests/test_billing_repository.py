"""SQLAlchemy repository, invoice numbering and ledger sync on a real schema."""

from decimal import Decimal

import pytest
from sqlalchemy import text

from hospital_billing.models.billing import Invoice, LineItem, NumberSeries
from hospital_billing.services import billing_service as svc
from hospital_billing.services.billing_numbers import next_invoice_number
from hospital_billing.services.billing_repository import SqlAlchemyBillingRepository
from hospital_billing.services.charge_ledger import ChargeLedger
from hospital_billing.services.billing_math import money2
from hospital_billing.services.charge_sources import LineFields, MedicationSource, map_medication


@pytest.fixture
def repo(db):
    return SqlAlchemyBillingRepository(db)


@pytest.fixture
def invoice(db, admission):
    inv = svc.create_invoice(db, admission_key=admission.id, actor_id=admission.clerk_id)
    db.commit()
    return inv


def lab_fields(ref="99", price="450"):
    return LineFields(item_type="lab",
                      item_name="Complete Blood Count",
                      item_description="Lab Test: Hematology",
                      quantity=Decimal("1"),
                      unit_price=Decimal(price),
                      total_price=Decimal(price),
                      reference_id=ref)


class TestInsertItem:
    def test_duplicate_source_is_refused_without_breaking_the_session(self, db, repo, invoice):
        assert repo.insert_item(invoice, lab_fields(), None) is not None
        assert repo.insert_item(invoice, lab_fields(), None) is None

        # outer transaction is still usable
        assert repo.insert_item(invoice, lab_fields(ref="100"), None) is not None
        db.commit()
        refs = [i.reference_id for i in repo.list_items(invoice.id)]
        assert refs == ["99", "100"]

    def test_custom_items_with_null_reference_never_collide(self, db, repo, invoice):
        custom = LineFields(item_type="custom",
                            item_name="Nursing care",
                            item_description=None,
                            quantity=Decimal("1"),
                            unit_price=Decimal("250"),
                            total_price=Decimal("250"),
                            reference_id=None)
        assert repo.insert_item(invoice, custom, None) is not None
        assert repo.insert_item(invoice, custom, None) is not None
        db.commit()
        assert db.query(LineItem).filter(LineItem.invoice_id == invoice.id).count() == 2

    def test_fractional_per_dose_rate_survives_reload(self, db, repo, invoice):
        fields = map_medication(MedicationSource(medication_id=501, name="Iron syrup",
                                                 price_per_unit=Decimal("0.4115"),
                                                 units_per_dose=Decimal("3"),
                                                 doses_administered=7))
        repo.insert_item(invoice, fields, None)
        db.commit()
        db.expire_all()

        item = repo.list_items(invoice.id)[0]
        assert item.unit_price == Decimal("1.2345")
        assert item.total_price == Decimal("8.64")
        assert money2(item.quantity * item.unit_price) == item.total_price


class TestChargeSourceReads:
    def test_room_segments_in_start_order(self, repo, admission):
        segs = repo.room_segments(admission.id)
        assert [s.segment_id for s in segs] == [admission.seg_general_id, admission.seg_icu_id]
        assert segs[1].room_number == "ICU-2"
        assert segs[1].bed_number == "B2"
        assert segs[1].end_date is None

    def test_medications_carry_catalog_fallback(self, repo, admission):
        meds = {m.medication_id: m for m in repo.medications(admission.id)}
        assert meds[admission.ceftriaxone_id].catalog_price_per_unit == Decimal("85")
        assert meds[admission.paracetamol_id].catalog_price_per_unit is None

    def test_only_billed_lab_reports(self, repo, admission):
        labs = repo.billed_lab_reports(admission.id)
        assert [r.report_id for r in labs] == [admission.cbc_id]


class TestLedgerOnDatabase:
    def test_sync_all_twice(self, db, repo, invoice, clock):
        ledger = ChargeLedger(repo, clock=clock)

        first = ledger.sync_all(invoice.id)
        db.commit()
        second = ledger.sync_all(invoice.id)
        db.commit()

        assert first.added == {"room": 2, "medication": 2, "lab": 1}
        assert second.added == {}
        assert second.refreshed == 0

        items = repo.list_items(invoice.id)
        assert len(items) == 5
        # 4500 + 10000 + 30 + 340 + 450
        db.refresh(invoice)
        assert invoice.total_amount == Decimal("15320.00")
        assert invoice.total_amount == sum(i.total_price for i in items)

    def test_unreadable_category_is_skipped(self, db, repo, invoice, clock):
        db.execute(text("DROP TABLE room_history"))

        report = ChargeLedger(repo, clock=clock).sync_all(invoice.id)

        assert report.skipped_categories == ["room"]
        assert report.added == {"medication": 2, "lab": 1}
        assert invoice.total_amount == Decimal("820.00")


class TestInvoiceNumbers:
    def test_sequential(self, db):
        assert next_invoice_number(db) == "INV-000001"
        assert next_invoice_number(db) == "INV-000002"
        row = db.query(NumberSeries).filter(NumberSeries.prefix == "INV-").one()
        assert row.next_number == 3

    def test_new_series_continues_after_existing_numbers(self, db, admission):
        db.add(Invoice(invoice_number="INV-000041", admission_id=admission.id))
        db.add(Invoice(invoice_number="INV-legacy", admission_id=admission.id))
        db.flush()

        assert next_invoice_number(db) == "INV-000042"

    def test_custom_prefix_and_padding(self, db):
        assert next_invoice_number(db, prefix="OP-", padding=4) == "OP-0001"

    def test_created_invoices_get_distinct_numbers(self, db, admission):
        a = svc.create_invoice(db, admission_key=admission.id, actor_id=None)
        b = svc.create_invoice(db, admission_key=admission.code, actor_id=None)
        db.commit()
        assert (a.invoice_number, b.invoice_number) == ("INV-000001", "INV-000002")
        assert a.tax_rate == Decimal("18")
