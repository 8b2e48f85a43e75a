# FILE: hospital_billing/services/charge_ledger.py
"""
Charge ledger: keeps an invoice's line items in step with its charge sources.

Invariants kept by every public method:
- invoice.total_amount == sum(item.total_price for item in items)
- at most one item per (invoice, item_type, reference_id)
- running a sync twice with unchanged sources changes nothing
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from hospital_billing.models.billing import (
    ITEM_LAB,
    ITEM_MEDICATION,
    ITEM_ROOM,
    Invoice,
    LineItem,
)
from hospital_billing.services.billing_errors import (
    BillingNotFound,
    BillingValidationError,
    ChargeSourceError,
)
from hospital_billing.services.billing_math import D, line_total, sum_line_totals
from hospital_billing.services.billing_repository import BillingRepository
from hospital_billing.services.charge_sources import (
    CustomSource,
    LineFields,
    map_lab,
    map_medication,
    map_room,
    stay_days,
    to_line_fields,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomSegmentCharge:
    segment_id: int
    room_type: Optional[str]
    start_date: datetime
    end_date: Optional[datetime]
    days: int
    rate_per_day: Decimal
    charges: Decimal


@dataclass(frozen=True)
class RoomCharges:
    segments: List[RoomSegmentCharge]
    total: Decimal

    @property
    def total_days(self) -> int:
        return sum(s.days for s in self.segments)


@dataclass
class SyncReport:
    added: Dict[str, int] = field(default_factory=dict)
    refreshed: int = 0
    skipped_categories: List[str] = field(default_factory=list)
    total: Decimal = Decimal("0")

    def bump(self, item_type: str) -> None:
        self.added[item_type] = self.added.get(item_type, 0) + 1


def _refs(items: Iterable[LineItem], item_type: str) -> Dict[str, LineItem]:
    return {
        str(i.reference_id): i
        for i in items if i.item_type == item_type and i.reference_id is not None
    }


def _differs(item: LineItem, fields: LineFields) -> bool:
    return (D(item.quantity) != D(fields.quantity)
            or D(item.unit_price) != D(fields.unit_price)
            or D(item.total_price) != D(fields.total_price))


class ChargeLedger:

    def __init__(self,
                 repo: BillingRepository,
                 *,
                 clock: Optional[Callable[[], datetime]] = None):
        self.repo = repo
        self.clock = clock or datetime.utcnow

    # -----------------------------
    # room charges
    # -----------------------------
    def compute_room_charges(self, admission_id: int) -> RoomCharges:
        now = self.clock()
        segments: List[RoomSegmentCharge] = []
        total = Decimal("0")
        for seg in self.repo.room_segments(admission_id):
            days = stay_days(seg.start_date, seg.end_date, now)
            charges = line_total(days, seg.rate_per_day)
            segments.append(
                RoomSegmentCharge(
                    segment_id=seg.segment_id,
                    room_type=seg.room_type,
                    start_date=seg.start_date,
                    end_date=seg.end_date,
                    days=days,
                    rate_per_day=D(seg.rate_per_day),
                    charges=charges,
                ))
            total += charges
        return RoomCharges(segments=segments, total=total)

    def sync_room_charges(self, invoice: Invoice, existing: List[LineItem],
                          actor_id: Optional[int] = None,
                          report: Optional[SyncReport] = None) -> List[LineItem]:
        report = report or SyncReport()
        now = self.clock()
        present = _refs(existing, ITEM_ROOM)
        out = list(existing)
        collided = False

        for seg in self.repo.room_segments(invoice.admission_id):
            fields = map_room(seg, now)
            item = present.get(fields.reference_id)
            if item is not None:
                # an open segment keeps accruing days
                if _differs(item, fields):
                    self.repo.update_item(item, fields, actor_id)
                    report.refreshed += 1
                continue
            if fields.total_price <= 0:
                continue
            if not self._materialize(invoice, fields, actor_id, out, report):
                collided = True

        if collided:
            out = self.repo.list_items(invoice.id, lock=True)
        self._recompute(invoice, out, actor_id, report)
        return out

    # -----------------------------
    # medication / lab charges
    # -----------------------------
    def sync_medication_charges(self, invoice: Invoice, existing: List[LineItem],
                                actor_id: Optional[int] = None,
                                only_ids: Optional[Iterable[int]] = None,
                                report: Optional[SyncReport] = None) -> List[LineItem]:
        report = report or SyncReport()
        present = _refs(existing, ITEM_MEDICATION)
        out = list(existing)
        collided = False

        for med in self.repo.medications(invoice.admission_id, only_ids):
            if str(med.medication_id) in present:
                continue
            fields = map_medication(med)
            if fields.total_price <= 0:
                logger.info("Medication %s skipped, zero charge", med.medication_id)
                continue
            if not self._materialize(invoice, fields, actor_id, out, report):
                collided = True

        if collided:
            out = self.repo.list_items(invoice.id, lock=True)
        self._recompute(invoice, out, actor_id, report)
        return out

    def sync_lab_charges(self, invoice: Invoice, existing: List[LineItem],
                         actor_id: Optional[int] = None,
                         only_ids: Optional[Iterable[int]] = None,
                         report: Optional[SyncReport] = None) -> List[LineItem]:
        report = report or SyncReport()
        present = _refs(existing, ITEM_LAB)
        out = list(existing)
        collided = False

        for lab in self.repo.billed_lab_reports(invoice.admission_id, only_ids):
            if str(lab.report_id) in present:
                continue
            fields = map_lab(lab)
            if fields.total_price <= 0:
                continue
            if not self._materialize(invoice, fields, actor_id, out, report):
                collided = True

        if collided:
            out = self.repo.list_items(invoice.id, lock=True)
        self._recompute(invoice, out, actor_id, report)
        return out

    # -----------------------------
    # full sync
    # -----------------------------
    def sync_all(self, invoice_id: int, actor_id: Optional[int] = None,
                 *,
                 medication_ids: Optional[Iterable[int]] = None,
                 lab_report_ids: Optional[Iterable[int]] = None) -> SyncReport:
        invoice = self.repo.get_invoice(invoice_id, lock=True)
        if not invoice:
            raise BillingNotFound("Invoice not found")

        report = SyncReport()
        items = self.repo.list_items(invoice.id, lock=True)

        steps = (
            (ITEM_ROOM, lambda cur: self.sync_room_charges(
                invoice, cur, actor_id, report=report)),
            (ITEM_MEDICATION, lambda cur: self.sync_medication_charges(
                invoice, cur, actor_id, medication_ids, report=report)),
            (ITEM_LAB, lambda cur: self.sync_lab_charges(
                invoice, cur, actor_id, lab_report_ids, report=report)),
        )
        for category, step in steps:
            try:
                items = step(items)
            except ChargeSourceError as e:
                logger.warning("Skipping %s charges for invoice %s: %s",
                               category, invoice.id, e)
                report.skipped_categories.append(category)

        self._recompute(invoice, items, actor_id, report)
        return report

    # -----------------------------
    # single item mutations
    # -----------------------------
    def add_custom_item(self, invoice_id: int, *, item_name: str, quantity=1,
                        unit_price=0, item_description: Optional[str] = None,
                        actor_id: Optional[int] = None) -> LineItem:
        invoice = self.repo.get_invoice(invoice_id, lock=True)
        if not invoice:
            raise BillingNotFound("Invoice not found")
        if not (item_name or "").strip():
            raise BillingValidationError("item_name is required")
        if D(quantity) <= 0:
            raise BillingValidationError("quantity must be positive")
        if D(unit_price) < 0:
            raise BillingValidationError("unit_price cannot be negative")

        fields = to_line_fields(
            CustomSource(item_name=item_name.strip(),
                         quantity=D(quantity),
                         unit_price=D(unit_price),
                         item_description=item_description),
            self.clock(),
        )
        item = self.repo.insert_item(invoice, fields, actor_id)
        self._recompute(invoice, self.repo.list_items(invoice.id, lock=True), actor_id)
        return item

    def update_item(self, item_id: int, *, actor_id: Optional[int] = None,
                    item_name: Optional[str] = None,
                    item_description: Optional[str] = None,
                    quantity=None, unit_price=None) -> LineItem:
        item = self.repo.get_item(item_id)
        if not item:
            raise BillingNotFound("Bill item not found")
        invoice = self.repo.get_invoice(item.invoice_id, lock=True)

        qty = D(item.quantity) if quantity is None else D(quantity)
        price = D(item.unit_price) if unit_price is None else D(unit_price)
        if qty <= 0:
            raise BillingValidationError("quantity must be positive")
        if price < 0:
            raise BillingValidationError("unit_price cannot be negative")

        fields = LineFields(
            item_type=item.item_type,
            item_name=(item_name if item_name is not None else item.item_name),
            item_description=(item_description if item_description is not None
                              else item.item_description),
            quantity=qty,
            unit_price=price,
            total_price=line_total(qty, price),
            reference_id=item.reference_id,
        )
        self.repo.update_item(item, fields, actor_id)
        self._recompute(invoice, self.repo.list_items(invoice.id, lock=True), actor_id)
        return item

    def delete_item(self, item_id: int, *, actor_id: Optional[int] = None) -> Invoice:
        item = self.repo.get_item(item_id)
        if not item:
            raise BillingNotFound("Bill item not found")
        invoice = self.repo.get_invoice(item.invoice_id, lock=True)
        self.repo.delete_item(item)
        self._recompute(invoice, self.repo.list_items(invoice.id, lock=True), actor_id)
        return invoice

    def recompute_total(self, invoice_id: int, actor_id: Optional[int] = None) -> Decimal:
        invoice = self.repo.get_invoice(invoice_id, lock=True)
        if not invoice:
            raise BillingNotFound("Invoice not found")
        return self._recompute(invoice, self.repo.list_items(invoice.id, lock=True), actor_id)

    # -----------------------------
    def _materialize(self, invoice: Invoice, fields: LineFields, actor_id: Optional[int],
                     out: List[LineItem], report: SyncReport) -> bool:
        """False when another writer already holds this (type, reference) line."""
        created = self.repo.insert_item(invoice, fields, actor_id)
        if created is None:
            return False
        out.append(created)
        report.bump(fields.item_type)
        return True

    def _recompute(self, invoice: Invoice, items: List[LineItem],
                   actor_id: Optional[int],
                   report: Optional[SyncReport] = None) -> Decimal:
        total = sum_line_totals(i.total_price for i in items)
        if D(invoice.total_amount) != total:
            self.repo.set_total(invoice, total, actor_id)
        if report is not None:
            report.total = total
        return total
