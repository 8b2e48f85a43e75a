# FILE: hospital_billing/api/routes_billing_print.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from hospital_billing.api.deps import ActingStaff, get_db, require_billing
from hospital_billing.schemas.billing import SendEmailIn
from hospital_billing.services.invoice_document import email_invoice, generate_invoice_pdf
from hospital_billing.utils.resp import ok

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/billing", tags=["Billing Print"])


@router.get("/{invoice_id}/pdf")
def invoice_pdf(
        invoice_id: int,
        include_lab_reports: bool = Query(False, alias="includeLabReports"),
        include_summary: bool = Query(False, alias="includeSummary"),
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    pdf = generate_invoice_pdf(
        db,
        invoice_id,
        actor_id=staff.id,
        include_lab_reports=include_lab_reports,
        include_summary=include_summary,
    )
    # ledger sync may have added items
    db.commit()
    logger.info("Invoice %s PDF generated (%d bytes, %d reports merged)", invoice_id,
                len(pdf.data), pdf.merged_reports)
    return Response(
        content=pdf.data,
        media_type=pdf.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{pdf.filename}"',
            "Content-Length": str(len(pdf.data)),
        },
    )


@router.post("/{invoice_id}/send-email")
def send_invoice_email(
        invoice_id: int,
        payload: SendEmailIn,
        db: Session = Depends(get_db),
        staff: ActingStaff = Depends(require_billing),
):
    out = email_invoice(
        db,
        invoice_id,
        actor_id=staff.id,
        to_email=payload.email,
        subject=payload.subject,
        message=payload.message,
        include_lab_reports=payload.include_lab_reports,
        include_summary=payload.include_summary,
    )
    db.commit()
    return ok(out)
