# FILE: hospital_billing/services/billing_repository.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from hospital_billing.models.billing import Invoice, LineItem
from hospital_billing.models.clinical import LabReport, PatientMedication, RoomHistory
from hospital_billing.services.billing_errors import ChargeSourceError
from hospital_billing.services.charge_sources import (
    LabSource,
    LineFields,
    MedicationSource,
    RoomSource,
    lab_source_from_row,
    medication_source_from_row,
    room_source_from_row,
)

logger = logging.getLogger(__name__)


class BillingRepository(ABC):
    """Storage seam for the charge ledger."""

    @abstractmethod
    def get_invoice(self, invoice_id: int, *, lock: bool = False) -> Optional[Invoice]:
        ...

    @abstractmethod
    def list_items(self, invoice_id: int, *, lock: bool = False) -> List[LineItem]:
        ...

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[LineItem]:
        ...

    @abstractmethod
    def room_segments(self, admission_id: int) -> List[RoomSource]:
        ...

    @abstractmethod
    def medications(self, admission_id: int,
                    only_ids: Optional[Iterable[int]] = None) -> List[MedicationSource]:
        ...

    @abstractmethod
    def billed_lab_reports(self, admission_id: int,
                           only_ids: Optional[Iterable[int]] = None) -> List[LabSource]:
        ...

    @abstractmethod
    def insert_item(self, invoice: Invoice, fields: LineFields,
                    actor_id: Optional[int]) -> Optional[LineItem]:
        """Returns None when the (invoice, type, reference) already exists."""

    @abstractmethod
    def update_item(self, item: LineItem, fields: LineFields,
                    actor_id: Optional[int]) -> LineItem:
        ...

    @abstractmethod
    def delete_item(self, item: LineItem) -> None:
        ...

    @abstractmethod
    def set_total(self, invoice: Invoice, total, actor_id: Optional[int]) -> None:
        ...


class SqlAlchemyBillingRepository(BillingRepository):

    def __init__(self, db: Session):
        self.db = db

    # ---------- invoices / items ----------
    def get_invoice(self, invoice_id: int, *, lock: bool = False) -> Optional[Invoice]:
        q = self.db.query(Invoice).filter(Invoice.id == int(invoice_id))
        if lock:
            q = q.with_for_update().populate_existing()
        return q.first()

    def list_items(self, invoice_id: int, *, lock: bool = False) -> List[LineItem]:
        # locking read sees rows committed after this transaction's snapshot
        q = self.db.query(LineItem).filter(LineItem.invoice_id == int(invoice_id))
        if lock:
            q = q.with_for_update().populate_existing()
        return q.order_by(LineItem.id.asc()).all()

    def get_item(self, item_id: int) -> Optional[LineItem]:
        return self.db.query(LineItem).filter(LineItem.id == int(item_id)).first()

    # ---------- charge sources ----------
    def _read(self, what: str, q) -> list:
        # savepoint so a failed read does not poison the outer transaction
        try:
            with self.db.begin_nested():
                return q.all()
        except SQLAlchemyError as e:
            raise ChargeSourceError(f"Failed to read {what}: {e}") from e

    def room_segments(self, admission_id: int) -> List[RoomSource]:
        q = (self.db.query(RoomHistory).options(
            joinedload(RoomHistory.room), joinedload(RoomHistory.bed)).filter(
                RoomHistory.admission_id == int(admission_id)).order_by(
                    RoomHistory.start_date.asc(), RoomHistory.id.asc()))
        return [room_source_from_row(r) for r in self._read("room history", q)]

    def medications(self, admission_id: int,
                    only_ids: Optional[Iterable[int]] = None) -> List[MedicationSource]:
        q = (self.db.query(PatientMedication).options(
            joinedload(PatientMedication.catalog)).filter(
                PatientMedication.admission_id == int(admission_id)))
        ids = [int(x) for x in (only_ids or [])]
        if ids:
            q = q.filter(PatientMedication.id.in_(ids))
        q = q.order_by(PatientMedication.id.asc())
        return [medication_source_from_row(r) for r in self._read("medications", q)]

    def billed_lab_reports(self, admission_id: int,
                           only_ids: Optional[Iterable[int]] = None) -> List[LabSource]:
        q = (self.db.query(LabReport).filter(
            LabReport.admission_id == int(admission_id)).filter(
                LabReport.billing_status == "billed"))
        ids = [int(x) for x in (only_ids or [])]
        if ids:
            q = q.filter(LabReport.id.in_(ids))
        q = q.order_by(LabReport.id.asc())
        return [lab_source_from_row(r) for r in self._read("lab reports", q)]

    # ---------- mutations ----------
    def insert_item(self, invoice: Invoice, fields: LineFields,
                    actor_id: Optional[int]) -> Optional[LineItem]:
        item = LineItem(
            invoice_id=invoice.id,
            item_type=fields.item_type,
            item_name=fields.item_name,
            item_description=fields.item_description,
            quantity=fields.quantity,
            unit_price=fields.unit_price,
            total_price=fields.total_price,
            reference_id=fields.reference_id,
            created_by=actor_id,
            updated_by=actor_id,
        )
        try:
            with self.db.begin_nested():
                self.db.add(item)
                self.db.flush()
        except IntegrityError:
            # a concurrent sync materialized the same source first
            logger.info(
                "Line item already present invoice=%s type=%s ref=%s",
                invoice.id, fields.item_type, fields.reference_id)
            return None
        return item

    def update_item(self, item: LineItem, fields: LineFields,
                    actor_id: Optional[int]) -> LineItem:
        item.item_name = fields.item_name
        item.item_description = fields.item_description
        item.quantity = fields.quantity
        item.unit_price = fields.unit_price
        item.total_price = fields.total_price
        item.updated_by = actor_id
        item.updated_at = datetime.utcnow()
        self.db.flush()
        return item

    def delete_item(self, item: LineItem) -> None:
        self.db.delete(item)
        self.db.flush()

    def set_total(self, invoice: Invoice, total, actor_id: Optional[int]) -> None:
        invoice.total_amount = total
        if actor_id is not None:
            invoice.updated_by = actor_id
        invoice.updated_at = datetime.utcnow()
        self.db.flush()
