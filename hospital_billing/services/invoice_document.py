# FILE: hospital_billing/services/invoice_document.py
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from hospital_billing.core.config import settings
from hospital_billing.core.emailer import send_email
from hospital_billing.models.billing import ITEM_LAB, Invoice, LineItem
from hospital_billing.models.clinical import Admission, LabReport
from hospital_billing.services.billing_errors import BillingNotFound, BillingValidationError
from hospital_billing.services.billing_math import D, invoice_financials, money2
from hospital_billing.services.billing_service import (
    get_invoice_or_404,
    invoice_items,
    ledger_for,
)
from hospital_billing.services.object_storage import get_object_storage
from hospital_billing.services.pdfs.invoice_composer import (
    AdmissionFacts,
    HospitalIdentity,
    InvoiceDocument,
    LayoutOptions,
    LineItemView,
    NarrativeSection,
    PatientFacts,
    compose_invoice_pdf,
)
from hospital_billing.services.report_merger import ReportMerger
from hospital_billing.utils.timezone import now_local, utc_to_local

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

SUMMARY_FIELDS = (
    ("chief_complaint", "Chief Complaint"),
    ("diagnosis", "Diagnosis"),
    ("treatment_provided", "Treatment Provided"),
    ("outcome", "Outcome"),
    ("recommendations", "Recommendations"),
)


@dataclass(frozen=True)
class GeneratedPdf:
    filename: str
    data: bytes
    media_type: str = PDF_MEDIA_TYPE
    merged_reports: int = 0


def invoice_filename(invoice_number: str, with_reports: bool = False) -> str:
    suffix = "-with-reports" if with_reports else ""
    return f"invoice-{invoice_number}{suffix}.pdf"


def hospital_identity() -> HospitalIdentity:
    return HospitalIdentity(
        name=settings.HOSPITAL_NAME,
        address=settings.HOSPITAL_ADDRESS,
        phone=settings.HOSPITAL_PHONE,
        email=settings.HOSPITAL_EMAIL,
        emergency_info=settings.HOSPITAL_EMERGENCY_INFO,
        logo_path=settings.HOSPITAL_LOGO_PATH,
    )


def _bed_label(adm: Admission) -> Optional[str]:
    room = adm.room
    bed = adm.bed
    parts = []
    if room is not None:
        parts.append(f"Room {room.room_number}")
    if bed is not None:
        parts.append(f"Bed {bed.bed_number}")
    return " / ".join(parts) or None


def _narrative(adm: Admission) -> tuple:
    s = adm.summary
    if s is None:
        return ()
    out = []
    for attr, title in SUMMARY_FIELDS:
        body = (getattr(s, attr, None) or "").strip()
        if body:
            out.append(NarrativeSection(title=title, body=body))
    return tuple(out)


def build_document_input(
    inv: Invoice,
    items: List[LineItem],
    *,
    include_summary: bool = False,
    generated_at: Optional[datetime] = None,
    identity: Optional[HospitalIdentity] = None,
) -> InvoiceDocument:
    adm = inv.admission
    if adm is None:
        raise BillingNotFound("Admission data not found")
    patient = adm.patient
    if patient is None:
        raise BillingNotFound("Patient data not found")

    return InvoiceDocument(
        identity=identity or hospital_identity(),
        patient=PatientFacts(
            name=patient.name,
            uid=patient.uid,
            date_of_birth=patient.date_of_birth,
            gender=patient.gender,
            address=patient.address,
        ),
        admission=AdmissionFacts(
            admission_number=adm.admission_code or str(adm.id),
            bill_date=utc_to_local(inv.created_at),
            bed_label=_bed_label(adm),
            clinician=adm.doctor.name if adm.doctor is not None else None,
            admission_date=utc_to_local(adm.admission_date),
            discharge_date=utc_to_local(adm.discharge_date),
        ),
        invoice_number=inv.invoice_number,
        items=tuple(
            LineItemView(
                item_type=i.item_type,
                item_name=i.item_name,
                item_description=i.item_description,
                quantity=D(i.quantity),
                unit_price=D(i.unit_price),
                total_price=D(i.total_price),
                item_id=i.id,
                reference_id=i.reference_id,
                created_at=utc_to_local(i.created_at),
            ) for i in items),
        financials=invoice_financials(inv),
        generated_at=generated_at or now_local(),
        status=inv.status,
        discount_type=inv.discount_type,
        discount_value=D(inv.discount_value),
        discount_reason=inv.discount_reason,
        include_tax=bool(inv.include_tax),
        tax_rate=D(inv.tax_rate),
        payment_method=inv.payment_method,
        last_payment_date=utc_to_local(inv.last_payment_date),
        narrative=_narrative(adm) if include_summary else (),
        options=LayoutOptions(include_narrative=include_summary),
    )


def lab_report_locations(db: Session, items: List[LineItem]) -> List[str]:
    """PDF locations of the lab reports billed on this invoice, in item order."""
    ids = []
    for it in items:
        if it.item_type == ITEM_LAB and it.reference_id and str(it.reference_id).isdigit():
            ids.append(int(it.reference_id))
    if not ids:
        return []

    reports = {r.id: r for r in db.query(LabReport).filter(LabReport.id.in_(ids)).all()}
    out: List[str] = []
    for rid in ids:
        rep = reports.get(rid)
        if rep is None:
            continue
        loc = (rep.pdf_url or "").strip() or (rep.pdf_storage_path or "").strip()
        if loc:
            out.append(loc)
    return out


def generate_invoice_pdf(
    db: Session,
    invoice_id: int,
    *,
    actor_id: Optional[int] = None,
    include_lab_reports: bool = False,
    include_summary: bool = False,
    merger: Optional[ReportMerger] = None,
) -> GeneratedPdf:
    inv = get_invoice_or_404(db, invoice_id, lock=True)

    # totals on paper are never stale
    ledger_for(db).sync_all(inv.id, actor_id)
    items = invoice_items(db, inv.id)

    doc = build_document_input(inv, items, include_summary=include_summary)
    data = compose_invoice_pdf(doc)

    merged = 0
    if include_lab_reports:
        locations = lab_report_locations(db, items)
        if locations:
            merger = merger or ReportMerger(storage=get_object_storage())
            result = merger.merge(data, locations)
            data = result.data
            merged = len(result.appended)

    return GeneratedPdf(
        filename=invoice_filename(inv.invoice_number, include_lab_reports),
        data=data,
        merged_reports=merged,
    )


# -----------------------------
# email
# -----------------------------
def _email_text(inv: Invoice, patient_name: str) -> str:
    f = invoice_financials(inv).rounded()
    outstanding = max(f.balance, D(0)) if inv.status != "paid" else D(0)
    return (f"Dear {patient_name},\n\n"
            f"Please find your invoice {inv.invoice_number} attached for your records.\n\n"
            f"Amount Payable: Rs. {f.payable:,.2f}\n"
            f"Status: {inv.status}\n"
            f"Outstanding: Rs. {money2(outstanding):,.2f}\n\n"
            "If you have already settled this invoice, please ignore this message.\n\n"
            f"Regards,\n{settings.HOSPITAL_NAME}\n"
            f"{settings.HOSPITAL_PHONE} | {settings.HOSPITAL_EMAIL}")


def _email_html(text: str, inv: Invoice) -> str:
    body = "<br>".join(html.escape(line) for line in text.splitlines())
    link = f"{settings.PORTAL_URL.rstrip('/')}/billing/{inv.id}"
    return (f"<div style=\"font-family: Arial, sans-serif; color: #2c3e50;\">"
            f"<h2 style=\"color: #1a5f7a;\">{html.escape(settings.HOSPITAL_NAME)}</h2>"
            f"<p>{body}</p>"
            f"<p><a href=\"{html.escape(link)}\">View invoice online</a></p>"
            f"</div>")


def email_invoice(
    db: Session,
    invoice_id: int,
    *,
    actor_id: Optional[int] = None,
    to_email: Optional[str] = None,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    include_lab_reports: bool = False,
    include_summary: bool = False,
    merger: Optional[ReportMerger] = None,
    sender: Optional[Callable[..., None]] = None,
) -> dict:
    sender = sender or send_email
    inv = get_invoice_or_404(db, invoice_id, lock=True)
    adm = inv.admission
    if adm is None or adm.patient is None:
        raise BillingNotFound("Admission data not found")

    recipient = (to_email or adm.patient.email or "").strip()
    if not recipient:
        raise BillingValidationError("Patient email not found")

    pdf = generate_invoice_pdf(
        db,
        inv.id,
        actor_id=actor_id,
        include_lab_reports=include_lab_reports,
        include_summary=include_summary,
        merger=merger,
    )

    text = message or _email_text(inv, adm.patient.name or "Patient")
    sender(
        recipient,
        subject or f"Invoice {inv.invoice_number} - {settings.HOSPITAL_NAME}",
        text,
        html=_email_html(text, inv),
        attachments=[(pdf.filename, pdf.data, pdf.media_type)],
    )
    logger.info("Invoice %s emailed to %s by %s", inv.invoice_number, recipient, actor_id)
    return {
        "invoice_id": inv.id,
        "invoice_number": inv.invoice_number,
        "recipient": recipient,
        "merged_reports": pdf.merged_reports,
    }
