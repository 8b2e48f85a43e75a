# FILE: hospital_billing/api/routes_billing.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hospital_billing.api.deps import ActingStaff, current_staff, get_db, require_billing
from hospital_billing.core.config import settings
from hospital_billing.schemas.billing import (
    ComprehensiveInvoiceIn,
    CustomItemIn,
    FinancialsOut,
    InvoiceCreate,
    InvoiceOut,
    InvoiceStatusUpdate,
    ItemUpdate,
    LineItemOut,
)
from hospital_billing.services import billing_service as svc
from hospital_billing.services.billing_math import invoice_financials
from hospital_billing.utils.resp import ok, page_meta

router = APIRouter(prefix="/billing", tags=["Billing"])


def _invoice_out(inv) -> dict:
    data = InvoiceOut.model_validate(inv).model_dump()
    data["financials"] = FinancialsOut(**invoice_financials(inv).as_dict()).model_dump()
    return data


def _items_out(items) -> list:
    return [LineItemOut.model_validate(i).model_dump() for i in items]


# =========================================================
# Read
# =========================================================
@router.get("")
def list_invoices(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=settings.BILLING_PAGE_LIMIT_MAX),
        status: Optional[str] = Query(None),
        search: Optional[str] = Query(None),
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    rows, total = svc.list_invoices(db, page=page, limit=limit, status=status, search=search)
    return ok({"invoices": [_invoice_out(r) for r in rows]},
              meta=page_meta(page, limit, total))


@router.get("/admission/{admission_id}")
def invoices_for_admission(
        admission_id: int,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    rows = svc.invoices_for_admission(db, admission_id)
    return ok({"invoices": [_invoice_out(r) for r in rows]})


@router.get("/admission/{admission_id}/room-charges")
def room_charges(
        admission_id: int,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    adm = svc.get_admission_or_404(db, admission_id)
    rc = svc.ledger_for(db).compute_room_charges(adm.id)
    return ok({
        "total_days": rc.total_days,
        "total_charges": rc.total,
        "breakdown": [{
            "segment_id": s.segment_id,
            "room_type": s.room_type,
            "start_date": s.start_date,
            "end_date": s.end_date,
            "days": s.days,
            "rate_per_day": s.rate_per_day,
            "charges": s.charges,
        } for s in rc.segments],
    })


@router.get("/patient/{patient_id}")
def invoices_for_patient(
        patient_id: int,
        admission_id: Optional[int] = Query(None, alias="admissionId"),
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    rows = svc.invoices_for_patient(db, patient_id, admission_id)
    return ok({"invoices": [_invoice_out(r) for r in rows]})


@router.get("/patient/{patient_id}/charges")
def patient_charges(
        patient_id: int,
        admission_id: Optional[int] = Query(None, alias="admissionId"),
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    return ok(svc.patient_medication_charges(db, patient_id, admission_id))


@router.get("/{invoice_id}/details")
def invoice_details(
        invoice_id: int,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(current_staff),
):
    out = svc.invoice_details(db, invoice_id, staff.id)
    db.commit()
    return ok({
        "invoice": InvoiceOut.model_validate(out["invoice"]).model_dump(),
        "items": _items_out(out["items"]),
        "financials": out["financials"],
        "sync": out["sync"],
    })


# =========================================================
# Write
# =========================================================
@router.post("", status_code=201)
def create_invoice(
        payload: InvoiceCreate,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    inv = svc.create_invoice(db,
                             admission_key=payload.admission_id,
                             actor_id=staff.id,
                             include_tax=payload.include_tax,
                             tax_rate=payload.tax_rate)
    db.commit()
    db.refresh(inv)
    return ok(_invoice_out(inv), status_code=201)


@router.post("/comprehensive", status_code=201)
def create_comprehensive_invoice(
        payload: ComprehensiveInvoiceIn,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    inv = svc.initiate_billing(
        db,
        admission_key=payload.admission_id,
        actor_id=staff.id,
        include_room_charges=payload.include_room_charges,
        include_medication_charges=payload.include_medication_charges,
        include_lab_reports=payload.include_lab_reports,
        medication_ids=payload.medication_item_ids,
        lab_report_ids=payload.lab_report_ids,
        custom_items=[ci.model_dump() for ci in payload.custom_items],
        include_tax=payload.include_tax,
        tax_rate=payload.tax_rate,
    )
    db.commit()
    db.refresh(inv)
    items = svc.invoice_items(db, inv.id)
    return ok({"invoice": _invoice_out(inv), "items": _items_out(items)}, status_code=201)


@router.patch("/{invoice_id}/status")
def update_status(
        invoice_id: int,
        payload: InvoiceStatusUpdate,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    inv = svc.update_invoice_status(db, invoice_id, payload.model_dump(exclude_unset=True),
                                    staff.id)
    db.commit()
    db.refresh(inv)
    return ok(_invoice_out(inv))


@router.delete("/{invoice_id}")
def delete_invoice(
        invoice_id: int,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    svc.delete_invoice(db, invoice_id)
    db.commit()
    return ok({"deleted": True, "invoice_id": invoice_id})


# =========================================================
# Line items
# =========================================================
@router.post("/{invoice_id}/items", status_code=201)
def add_item(
        invoice_id: int,
        payload: CustomItemIn,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    ledger = svc.ledger_for(db)
    item = ledger.add_custom_item(
        invoice_id,
        item_name=payload.item_name,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        item_description=payload.item_description,
        actor_id=staff.id,
    )
    db.commit()
    inv = svc.get_invoice_or_404(db, invoice_id)
    return ok({"item": LineItemOut.model_validate(item).model_dump(),
               "invoice": _invoice_out(inv)},
              status_code=201)


@router.put("/items/{item_id}")
def update_item(
        item_id: int,
        payload: ItemUpdate,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    ledger = svc.ledger_for(db)
    item = ledger.update_item(item_id, actor_id=staff.id, **payload.model_dump(exclude_unset=True))
    db.commit()
    inv = svc.get_invoice_or_404(db, item.invoice_id)
    return ok({"item": LineItemOut.model_validate(item).model_dump(),
               "invoice": _invoice_out(inv)})


@router.delete("/items/{item_id}")
def delete_item(
        item_id: int,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    inv = svc.ledger_for(db).delete_item(item_id, actor_id=staff.id)
    db.commit()
    db.refresh(inv)
    return ok({"deleted": True, "invoice": _invoice_out(inv)})
