"""Assembly of invoice documents from stored data."""

from datetime import datetime

import pytest

from hospital_billing.services import billing_service as svc
from hospital_billing.services.billing_errors import BillingValidationError
from hospital_billing.services.invoice_document import (
    build_document_input,
    email_invoice,
    generate_invoice_pdf,
    invoice_filename,
    lab_report_locations,
)
from hospital_billing.services.report_merger import MergeResult


class RecordingMerger:

    def __init__(self):
        self.calls = []

    def merge(self, primary, locations):
        self.calls.append(list(locations))
        return MergeResult(data=primary, appended=list(locations))


@pytest.fixture
def invoice(db, admission):
    inv = svc.initiate_billing(db,
                               admission_key=admission.id,
                               actor_id=admission.clerk_id,
                               include_room_charges=False,
                               include_lab_reports=True)
    db.commit()
    return inv


def test_filenames():
    assert invoice_filename("INV-000003") == "invoice-INV-000003.pdf"
    assert invoice_filename("INV-000003", True) == "invoice-INV-000003-with-reports.pdf"


def test_document_input_from_invoice(db, invoice):
    doc = build_document_input(invoice, svc.invoice_items(db, invoice.id),
                               include_summary=True,
                               generated_at=datetime(2026, 10, 18, 12, 0))

    assert doc.patient.name == "Ravi Kumar"
    assert doc.admission.admission_number == "ADM-2026-0001"
    assert doc.admission.bed_label == "Room ICU-2 / Bed B2"
    assert doc.admission.clinician == "Dr. Meera Rao"
    assert [s.title for s in doc.narrative] == [
        "Chief Complaint", "Diagnosis", "Treatment Provided", "Outcome", "Recommendations"
    ]
    assert doc.options.include_narrative is True
    assert sum(i.total_price for i in doc.items) == doc.financials.subtotal


def test_narrative_left_out_unless_asked(db, invoice):
    doc = build_document_input(invoice, svc.invoice_items(db, invoice.id))
    assert doc.narrative == ()


def test_lab_locations_follow_invoice_items(db, admission, invoice):
    items = svc.invoice_items(db, invoice.id)
    assert lab_report_locations(db, items) == ["reports/lft.pdf"]


def test_generate_with_injected_merger(db, admission, invoice):
    merger = RecordingMerger()

    pdf = generate_invoice_pdf(db, invoice.id, include_lab_reports=True, merger=merger)

    # the sync adds the CBC billed earlier, after the LFT billed at creation
    assert merger.calls == [["reports/lft.pdf", "https://files.example.com/reports/cbc.pdf"]]
    assert pdf.merged_reports == 2
    assert pdf.filename.endswith("-with-reports.pdf")
    assert pdf.data.startswith(b"%PDF-")


def test_generate_without_reports_skips_merger(db, invoice):
    merger = RecordingMerger()
    pdf = generate_invoice_pdf(db, invoice.id, merger=merger)
    assert merger.calls == []
    assert pdf.merged_reports == 0


def test_email_needs_a_recipient(db, empty_admission):
    inv = svc.create_invoice(db, admission_key=empty_admission.id, actor_id=None)
    with pytest.raises(BillingValidationError, match="Patient email not found"):
        email_invoice(db, inv.id, sender=lambda *a, **kw: None)


def test_email_attachment_named_after_merged_pdf(db, invoice):
    sent = []
    email_invoice(db, invoice.id,
                  include_lab_reports=True,
                  merger=RecordingMerger(),
                  sender=lambda to, *a, attachments=None, **kw: sent.append(attachments))

    name, data, mime = sent[0][0]
    assert name == f"invoice-{invoice.invoice_number}-with-reports.pdf"
    assert mime == "application/pdf"
