# FILE: hospital_billing/services/billing_service.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from hospital_billing.core.config import settings
from hospital_billing.models.billing import (
    DISCOUNT_TYPES,
    INVOICE_STATUSES,
    Invoice,
    LineItem,
)
from hospital_billing.models.clinical import Admission, LabReport, PatientMedication
from hospital_billing.services.billing_errors import (
    BillingNotFound,
    BillingValidationError,
    ChargeSourceError,
)
from hospital_billing.services.billing_math import D, invoice_financials, money2
from hospital_billing.services.billing_numbers import next_invoice_number
from hospital_billing.services.billing_repository import SqlAlchemyBillingRepository
from hospital_billing.services.charge_ledger import ChargeLedger
from hospital_billing.services.charge_sources import medication_source_from_row, medication_pricing

logger = logging.getLogger(__name__)


def ledger_for(db: Session) -> ChargeLedger:
    return ChargeLedger(SqlAlchemyBillingRepository(db))


# -----------------------------
# lookups
# -----------------------------
def get_admission_or_404(db: Session, key: Any) -> Admission:
    """Admission by numeric id, falling back to its admission code."""
    adm = None
    s = str(key or "").strip()
    if not s:
        raise BillingValidationError("admission_id is required")
    if s.isdigit():
        adm = db.query(Admission).filter(Admission.id == int(s)).first()
    if not adm:
        if s.isdigit():
            logger.warning("Admission lookup by id %s failed, trying admission code", s)
        adm = db.query(Admission).filter(Admission.admission_code == s).first()
    if not adm:
        raise BillingNotFound("Admission not found")
    return adm


def get_invoice_or_404(db: Session, invoice_id: int, *, lock: bool = False) -> Invoice:
    inv = SqlAlchemyBillingRepository(db).get_invoice(invoice_id, lock=lock)
    if not inv:
        raise BillingNotFound("Invoice not found")
    return inv


def invoice_items(db: Session, invoice_id: int) -> List[LineItem]:
    return SqlAlchemyBillingRepository(db).list_items(invoice_id)


# -----------------------------
# create
# -----------------------------
def create_invoice(
    db: Session,
    *,
    admission_key: Any,
    actor_id: Optional[int],
    include_tax: bool = False,
    tax_rate=None,
) -> Invoice:
    adm = get_admission_or_404(db, admission_key)
    inv = Invoice(
        admission_id=adm.id,
        invoice_number=next_invoice_number(db),
        status="pending",
        total_amount=Decimal("0"),
        include_tax=bool(include_tax),
        tax_rate=D(tax_rate if tax_rate is not None else settings.BILLING_DEFAULT_TAX_RATE),
        paid_amount=Decimal("0"),
        discount_value=Decimal("0"),
        generated_by=actor_id,
        updated_by=actor_id,
    )
    db.add(inv)
    db.flush()
    logger.info("Invoice %s created for admission %s by %s", inv.invoice_number,
                adm.id, actor_id)
    return inv


def mark_lab_reports_billed(db: Session, admission_id: int,
                            report_ids: Optional[Iterable[int]] = None) -> List[int]:
    q = (db.query(LabReport).filter(LabReport.admission_id == int(admission_id)).filter(
        LabReport.billing_status == "pending"))
    ids = [int(x) for x in (report_ids or [])]
    if ids:
        q = q.filter(LabReport.id.in_(ids))
    marked: List[int] = []
    for rep in q.with_for_update().all():
        rep.billing_status = "billed"
        marked.append(int(rep.id))
    db.flush()
    return marked


def initiate_billing(
    db: Session,
    *,
    admission_key: Any,
    actor_id: Optional[int],
    include_room_charges: bool = True,
    include_medication_charges: bool = True,
    include_lab_reports: bool = False,
    medication_ids: Optional[Iterable[int]] = None,
    lab_report_ids: Optional[Iterable[int]] = None,
    custom_items: Optional[List[Dict[str, Any]]] = None,
    include_tax: bool = False,
    tax_rate=None,
) -> Invoice:
    """
    Create an invoice and fill it from the admission's charge sources.
    Raises BillingValidationError when nothing billable was found; the caller
    rolls back so no empty invoice and no billed lab flags are left behind.
    """
    inv = create_invoice(db,
                         admission_key=admission_key,
                         actor_id=actor_id,
                         include_tax=include_tax,
                         tax_rate=tax_rate)
    ledger = ledger_for(db)
    repo = ledger.repo
    items = repo.list_items(inv.id)

    steps = []
    if include_room_charges:
        steps.append(("room", lambda cur: ledger.sync_room_charges(inv, cur, actor_id)))
    if include_medication_charges:
        steps.append(("medication", lambda cur: ledger.sync_medication_charges(
            inv, cur, actor_id, only_ids=medication_ids)))
    if include_lab_reports:
        marked = mark_lab_reports_billed(db, inv.admission_id, lab_report_ids)
        if marked:
            steps.append(("lab", lambda cur: ledger.sync_lab_charges(
                inv, cur, actor_id, only_ids=marked)))

    for category, step in steps:
        try:
            items = step(items)
        except ChargeSourceError as e:
            logger.warning("Skipping %s charges for invoice %s: %s", category,
                           inv.invoice_number, e)

    for ci in custom_items or []:
        ledger.add_custom_item(
            inv.id,
            item_name=ci.get("item_name") or "",
            quantity=ci.get("quantity") if ci.get("quantity") is not None else 1,
            unit_price=ci.get("unit_price") or 0,
            item_description=ci.get("item_description"),
            actor_id=actor_id,
        )

    total = ledger.recompute_total(inv.id, actor_id)
    if total <= 0:
        raise BillingValidationError("No billable items found")
    return inv


# -----------------------------
# read
# -----------------------------
def list_invoices(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[List[Invoice], int]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 10), 1), settings.BILLING_PAGE_LIMIT_MAX)

    q = db.query(Invoice)
    if status:
        q = q.filter(Invoice.status == status)
    if search:
        q = q.filter(Invoice.invoice_number.ilike(f"%{search.strip()}%"))

    total = q.count()
    rows = (q.order_by(desc(Invoice.created_at), desc(Invoice.id)).offset(
        (page - 1) * limit).limit(limit).all())
    return rows, total


def invoices_for_admission(db: Session, admission_id: int) -> List[Invoice]:
    return (db.query(Invoice).filter(Invoice.admission_id == int(admission_id)).order_by(
        desc(Invoice.created_at), desc(Invoice.id)).all())


def invoices_for_patient(db: Session, patient_id: int,
                         admission_id: Optional[int] = None) -> List[Invoice]:
    q = (db.query(Invoice).join(Admission, Admission.id == Invoice.admission_id).filter(
        Admission.patient_id == int(patient_id)))
    if admission_id:
        q = q.filter(Invoice.admission_id == int(admission_id))
    return q.order_by(desc(Invoice.created_at), desc(Invoice.id)).all()


def patient_medication_charges(db: Session, patient_id: int,
                               admission_id: Optional[int] = None) -> Dict[str, Any]:
    q = db.query(PatientMedication).filter(PatientMedication.patient_id == int(patient_id))
    if admission_id:
        q = q.filter(PatientMedication.admission_id == int(admission_id))

    rows = []
    total = Decimal("0")
    for med in q.order_by(PatientMedication.id.asc()).all():
        src = medication_source_from_row(med)
        price, units = medication_pricing(src)
        doses = int(src.doses_administered or 0)
        cost = price * units * doses
        total += cost
        rows.append({
            "id": med.id,
            "name": med.name,
            "admission_id": med.admission_id,
            "price_per_unit": money2(price),
            "units_per_dose": units,
            "doses_administered": doses,
            "total_doses": med.total_doses,
            "total_cost": money2(cost),
        })
    return {"medications": rows, "total": money2(total)}


# -----------------------------
# update / delete
# -----------------------------
def update_invoice_status(db: Session, invoice_id: int, changes: Dict[str, Any],
                          actor_id: Optional[int]) -> Invoice:
    """
    `changes` holds only the fields the caller sent (exclude_unset), so an
    absent key leaves the column alone and an explicit null clears it.
    """
    inv = get_invoice_or_404(db, invoice_id)

    status = changes.get("status")
    if status not in INVOICE_STATUSES:
        raise BillingValidationError(f"status must be one of {', '.join(INVOICE_STATUSES)}")
    inv.status = status

    if "paid_amount" in changes and changes["paid_amount"] is not None:
        paid = D(changes["paid_amount"])
        if paid < 0:
            raise BillingValidationError("paid_amount cannot be negative")
        inv.paid_amount = paid
        inv.last_payment_date = changes.get("last_payment_date") or datetime.utcnow()

    if "include_tax" in changes and changes["include_tax"] is not None:
        inv.include_tax = bool(changes["include_tax"])
    if "tax_rate" in changes and changes["tax_rate"] is not None:
        rate = D(changes["tax_rate"])
        if rate < 0 or rate > 100:
            raise BillingValidationError("tax_rate must be between 0 and 100")
        inv.tax_rate = rate

    for key in ("payment_method", "payment_reference", "payment_notes", "discount_reason"):
        if key in changes:
            setattr(inv, key, changes[key] or None)

    if "discount_type" in changes:
        kind = changes["discount_type"]
        if kind is not None and kind not in DISCOUNT_TYPES:
            raise BillingValidationError(f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
        inv.discount_type = None if kind in (None, "none") else kind
    if "discount_value" in changes:
        val = changes["discount_value"]
        if val is not None and D(val) < 0:
            raise BillingValidationError("discount_value cannot be negative")
        inv.discount_value = D(val) if val is not None else None
    if inv.discount_type == "percentage" and D(inv.discount_value) > 100:
        raise BillingValidationError("percentage discount cannot exceed 100")

    inv.updated_by = actor_id
    inv.updated_at = datetime.utcnow()
    db.flush()
    logger.info("Invoice %s status=%s paid=%s updated by %s", inv.invoice_number, inv.status,
                inv.paid_amount, actor_id)
    return inv


def delete_invoice(db: Session, invoice_id: int) -> None:
    inv = get_invoice_or_404(db, invoice_id)
    db.delete(inv)
    db.flush()
    logger.info("Invoice %s deleted", inv.invoice_number)


# -----------------------------
# details
# -----------------------------
def invoice_details(db: Session, invoice_id: int, actor_id: Optional[int]) -> Dict[str, Any]:
    """Sync the ledger, then return the invoice with its items and derived figures."""
    # lock first so the sync reads past this transaction's snapshot
    inv = get_invoice_or_404(db, invoice_id, lock=True)
    report = ledger_for(db).sync_all(inv.id, actor_id)
    items = invoice_items(db, inv.id)
    return {
        "invoice": inv,
        "items": items,
        "financials": invoice_financials(inv).as_dict(),
        "sync": {
            "added": report.added,
            "refreshed": report.refreshed,
            "skipped_categories": report.skipped_categories,
        },
    }
