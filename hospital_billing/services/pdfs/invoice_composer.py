# FILE: hospital_billing/services/pdfs/invoice_composer.py
"""
Provisional bill PDF.

compose_invoice_pdf() is a pure function of an InvoiceDocument: it reads no
database and no clock, so bills for different invoices can be rendered side by
side. Sections, top to bottom:

    header -> patient/admission block -> bill summary -> detailed breakup
    -> totals panel -> footer  [-> admission summary page]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit

from hospital_billing.services.billing_errors import DocumentGenerationError
from hospital_billing.services.billing_math import D, InvoiceFinancials, money2
from hospital_billing.services.pdfs.canvas_builder import DocumentBuilder, load_image
from hospital_billing.services.pdfs.table_layout import (
    TableColumn,
    breakup_columns,
    column_offsets,
    fit_text,
    summary_columns,
)

logger = logging.getLogger(__name__)

PRIMARY = colors.HexColor("#1a5f7a")
SECONDARY = colors.HexColor("#2c8aa6")
ACCENT = colors.HexColor("#e74c3c")
TEXT = colors.HexColor("#2c3e50")
LIGHT_BG = colors.HexColor("#ecf0f1")
BORDER = colors.HexColor("#bdc3c7")

MARGIN = 35
HEADER_ROW_H = 20
ROW_H = 16
FONT_SIZE = 8
CELL_PAD = 3

FOOTER_OFFSET = 60
FOOTER_MIN_HEIGHT = 30
# table rows stop here; below belongs to the footer
BODY_BOTTOM = FOOTER_OFFSET + 25

DISCLAIMER = ("This is a computer generated provisional bill and does not "
              "require a signature.")

CATEGORY_ORDER = ("room", "medication", "lab", "other")
CATEGORY_LABELS = {
    "room": "Room/Bed Charges",
    "medication": "Medication Charges",
    "lab": "Lab Charges",
    "other": "Other",
}
CODE_PREFIX = {"room": "RM", "medication": "MED", "lab": "LAB", "other": "OTH"}


# -----------------------------
# Inputs
# -----------------------------
@dataclass(frozen=True)
class HospitalIdentity:
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    emergency_info: str = ""
    logo_path: Optional[str] = None


@dataclass(frozen=True)
class PatientFacts:
    name: str
    uid: str = ""
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class AdmissionFacts:
    admission_number: str
    bill_date: Optional[datetime] = None
    bed_label: Optional[str] = None
    clinician: Optional[str] = None
    admission_date: Optional[datetime] = None
    discharge_date: Optional[datetime] = None


@dataclass(frozen=True)
class LineItemView:
    item_type: str
    item_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    item_description: Optional[str] = None
    item_id: Optional[int] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class NarrativeSection:
    title: str
    body: str


@dataclass(frozen=True)
class LayoutOptions:
    # one summary row per category instead of per item
    collapse_summary: bool = False
    include_narrative: bool = False
    number_pages: bool = True


@dataclass(frozen=True)
class InvoiceDocument:
    identity: HospitalIdentity
    patient: PatientFacts
    admission: AdmissionFacts
    invoice_number: str
    items: Tuple[LineItemView, ...]
    financials: InvoiceFinancials
    generated_at: datetime
    status: str = "pending"
    discount_type: Optional[str] = None
    discount_value: Decimal = Decimal("0")
    discount_reason: Optional[str] = None
    include_tax: bool = False
    tax_rate: Decimal = Decimal("18")
    payment_method: Optional[str] = None
    last_payment_date: Optional[datetime] = None
    narrative: Tuple[NarrativeSection, ...] = ()
    options: LayoutOptions = field(default_factory=LayoutOptions)


@dataclass(frozen=True)
class FooterPlacement:
    y: float
    crowded: bool


# -----------------------------
# Helpers
# -----------------------------
def _s(v, dash: str = "--") -> str:
    if v is None:
        return dash
    s = str(v).strip()
    return s if s else dash


def _money(x) -> str:
    return f"Rs. {money2(x):,.2f}"


def _qty(x) -> str:
    v = D(x)
    if v == v.to_integral_value():
        return str(int(v))
    return f"{v.normalize()}"


def _fmt_date(dt) -> str:
    if not dt:
        return "--"
    try:
        return dt.strftime("%d-%m-%Y")
    except Exception:
        return _s(dt)


def _fmt_dt(dt) -> str:
    if not dt:
        return "--"
    return dt.strftime("%d-%m-%Y %I:%M %p")


def age_on(dob: Optional[date], on: date) -> str:
    if not dob:
        return "--"
    if isinstance(dob, datetime):
        dob = dob.date()
    years = on.year - dob.year
    if (on.month, on.day) < (dob.month, dob.day):
        years -= 1
    return str(max(years, 0))


def category_of(item_type: str) -> str:
    t = (item_type or "").lower()
    return t if t in ("room", "medication", "lab") else "other"


def group_items(items: Sequence[LineItemView]) -> List[Tuple[str, List[LineItemView]]]:
    groups: Dict[str, List[LineItemView]] = {k: [] for k in CATEGORY_ORDER}
    for it in items:
        groups[category_of(it.item_type)].append(it)
    return [(k, groups[k]) for k in CATEGORY_ORDER if groups[k]]


def place_footer(cursor_y: float,
                 offset: float = FOOTER_OFFSET,
                 min_height: float = FOOTER_MIN_HEIGHT) -> FooterPlacement:
    """
    The footer always sits `offset` points above the page bottom. When the
    content ends closer than `min_height` above that line the footer is still
    drawn there; no page is added for it.
    """
    return FooterPlacement(y=offset, crowded=(cursor_y - offset) < min_height)


# -----------------------------
# Page cursor
# -----------------------------
class _Layout:

    def __init__(self, builder: DocumentBuilder):
        self.b = builder
        self.left = MARGIN
        self.right = builder.width - MARGIN
        self.width = self.right - self.left
        self.top = builder.height - MARGIN
        self.y = self.top

    def new_page(self) -> None:
        self.b.new_page()
        self.y = self.top

    def room_for(self, h: float) -> bool:
        return self.y - h >= BODY_BOTTOM


# -----------------------------
# Sections
# -----------------------------
def _draw_header(lay: _Layout, doc: InvoiceDocument) -> None:
    ident = doc.identity
    b = lay.b
    top = lay.y

    logo = load_image(ident.logo_path)
    text_x = lay.left
    if logo:
        b.image(logo, lay.left, top - 70, 70, 70)
        text_x = lay.left + 80
    text_w = lay.right - text_x

    b.fill_color(PRIMARY).font("Helvetica-Bold", 20)
    b.text(text_x, top - 20, fit_text(ident.name, text_w, "Helvetica-Bold", 20))

    b.fill_color(TEXT).font("Helvetica", 9)
    if ident.address:
        b.text(text_x, top - 35, fit_text(ident.address, text_w, "Helvetica", 9))
    contact = " | ".join(
        x for x in (f"Phone: {ident.phone}" if ident.phone else "",
                    f"Email: {ident.email}" if ident.email else "") if x)
    if contact:
        b.text(text_x, top - 48, fit_text(contact, text_w, "Helvetica", 9))
    if ident.emergency_info:
        b.fill_color(ACCENT).font("Helvetica-Bold", 8)
        b.text(text_x, top - 61, fit_text(ident.emergency_info, text_w, "Helvetica-Bold", 8))

    lay.y = top - 78
    b.stroke_color(PRIMARY).line_width(1.5)
    b.line(lay.left, lay.y, lay.right, lay.y)

    lay.y -= 18
    b.fill_color(PRIMARY).font("Helvetica-Bold", 13)
    b.text(lay.left + lay.width / 2, lay.y, "PROVISIONAL BILL", align="center")
    lay.y -= 14


def _kv(lay: _Layout, x: float, y: float, label: str, value: str,
        col_w: float, label_w: float = 85) -> None:
    b = lay.b
    b.fill_color(TEXT).font("Helvetica-Bold", FONT_SIZE)
    b.text(x, y, f"{label}:")
    b.font("Helvetica", FONT_SIZE)
    b.text(x + label_w + 5, y,
           fit_text(value or "--", col_w - label_w - 10, "Helvetica", FONT_SIZE))


def _draw_patient_block(lay: _Layout, doc: InvoiceDocument) -> None:
    p = doc.patient
    a = doc.admission
    col_w = lay.width / 2
    row = 13

    left_rows = [
        ("Patient Name", _s(p.name)),
        ("Patient UID", _s(p.uid)),
        ("Age / Gender",
         f"{age_on(p.date_of_birth, doc.generated_at.date())} / {_s(p.gender)}"),
        ("Address", _s(p.address)),
    ]
    right_rows = [
        ("Admission No", _s(a.admission_number)),
        ("Bill Date", _fmt_date(a.bill_date or doc.generated_at)),
        ("Bed No(s)", _s(a.bed_label)),
        ("Consulting Doctor", _s(a.clinician)),
    ]

    box_h = row * (len(left_rows) + 1) + 12
    top = lay.y
    lay.b.stroke_color(BORDER).line_width(0.8)
    lay.b.rect(lay.left, top - box_h, lay.width, box_h)

    y = top - 12
    for (ll, lv), (rl, rv) in zip(left_rows, right_rows):
        _kv(lay, lay.left + 6, y, ll, lv, col_w - 6)
        _kv(lay, lay.left + col_w + 6, y, rl, rv, col_w - 6)
        y -= row

    _kv(lay, lay.left + 6, y, "Admission Date", _fmt_dt(a.admission_date), col_w - 6)
    _kv(lay, lay.left + col_w + 6, y, "Discharge Date",
        _fmt_dt(a.discharge_date) if a.discharge_date else "Not discharged", col_w - 6)

    lay.y = top - box_h - 16


def _section_title(lay: _Layout, title: str) -> None:
    if not lay.room_for(15 + HEADER_ROW_H + ROW_H):
        lay.new_page()
    lay.b.fill_color(PRIMARY).font("Helvetica-Bold", 11)
    lay.b.text(lay.left, lay.y, title)
    lay.y -= 8


@dataclass(frozen=True)
class _Row:
    cells: Dict[str, str]
    kind: str = "item"  # item | group | subtotal


def _draw_header_row(lay: _Layout, columns: Sequence[TableColumn]) -> None:
    b = lay.b
    top = lay.y
    b.fill_color(PRIMARY)
    b.rect(lay.left, top - HEADER_ROW_H, sum(c.width for c in columns),
           HEADER_ROW_H, fill=True, stroke=False)
    b.fill_color(colors.white).font("Helvetica-Bold", FONT_SIZE)
    for x, c in column_offsets(lay.left, columns):
        _cell_text(lay, x, top - 13, c, c.label, "Helvetica-Bold")
    lay.y = top - HEADER_ROW_H


def _cell_text(lay: _Layout, x: float, y: float, col: TableColumn, value: str,
               font: str = "Helvetica") -> None:
    inner = col.width - 2 * CELL_PAD
    s = fit_text(value, inner, font, FONT_SIZE)
    if col.align == "right":
        lay.b.text(x + col.width - CELL_PAD, y, s, align="right")
    elif col.align == "center":
        lay.b.text(x + col.width / 2, y, s, align="center")
    else:
        lay.b.text(x + CELL_PAD, y, s)


def _draw_table(lay: _Layout, columns: Sequence[TableColumn], rows: Sequence[_Row]) -> None:
    b = lay.b
    table_w = sum(c.width for c in columns)
    _draw_header_row(lay, columns)

    for idx, row in enumerate(rows):
        if not lay.room_for(ROW_H):
            lay.new_page()
            _draw_header_row(lay, columns)

        top = lay.y
        bottom = top - ROW_H

        if row.kind == "group":
            b.fill_color(LIGHT_BG)
            b.rect(lay.left, bottom, table_w, ROW_H, fill=True, stroke=False)
            b.fill_color(SECONDARY).font("Helvetica-Bold", FONT_SIZE + 1)
            b.text(lay.left + CELL_PAD, top - 11,
                   fit_text(row.cells.get("label", ""), table_w - 2 * CELL_PAD,
                            "Helvetica-Bold", FONT_SIZE + 1))
        else:
            if row.kind == "subtotal":
                b.fill_color(LIGHT_BG)
                b.rect(lay.left, bottom, table_w, ROW_H, fill=True, stroke=False)
            font = "Helvetica-Bold" if row.kind == "subtotal" else "Helvetica"
            b.fill_color(TEXT).font(font, FONT_SIZE)
            for x, c in column_offsets(lay.left, columns):
                v = row.cells.get(c.key)
                if v is not None:
                    _cell_text(lay, x, top - 11, c, v, font)

        b.stroke_color(BORDER).line_width(0.5)
        b.line(lay.left, bottom, lay.left + table_w, bottom)
        lay.y = bottom

    lay.y -= 14


def _draw_summary(lay: _Layout, doc: InvoiceDocument) -> None:
    _section_title(lay, "BILL SUMMARY")
    cols = summary_columns(lay.width)
    rows: List[_Row] = []

    if doc.options.collapse_summary:
        for n, (cat, items) in enumerate(group_items(doc.items), start=1):
            rows.append(
                _Row({
                    "sno": str(n),
                    "particulars": CATEGORY_LABELS[cat],
                    "qty": str(len(items)),
                    "amount": _money(sum((D(i.total_price) for i in items), Decimal("0"))),
                }))
    else:
        for n, it in enumerate(doc.items, start=1):
            rows.append(
                _Row({
                    "sno": str(n),
                    "particulars": _s(it.item_name),
                    "qty": _qty(it.quantity),
                    "amount": _money(it.total_price),
                }))

    if not rows:
        rows.append(_Row({"particulars": "No billable items"}))
    rows.append(
        _Row({
            "particulars": "Total",
            "amount": _money(doc.financials.subtotal)
        }, kind="subtotal"))
    _draw_table(lay, cols, rows)


def _line_tax(doc: InvoiceDocument, amount: Decimal) -> Decimal:
    if not doc.include_tax:
        return Decimal("0")
    return amount * D(doc.tax_rate) / Decimal("100")


def _draw_breakup(lay: _Layout, doc: InvoiceDocument) -> None:
    _section_title(lay, "DETAILED BREAKUP")
    cols = breakup_columns(lay.width)
    rows: List[_Row] = []

    for cat, items in group_items(doc.items):
        rows.append(_Row({"label": CATEGORY_LABELS[cat]}, kind="group"))
        sub_amount = Decimal("0")
        sub_tax = Decimal("0")
        for it in items:
            amount = D(it.total_price)
            tax = _line_tax(doc, amount)
            sub_amount += amount
            sub_tax += tax
            ref = it.reference_id or it.item_id or "-"
            rows.append(
                _Row({
                    "code": f"{CODE_PREFIX[cat]}-{ref}",
                    "date": _fmt_date(it.created_at or doc.generated_at),
                    "particulars": _s(it.item_name),
                    "rate": _money(it.unit_price),
                    "qty": _qty(it.quantity),
                    "amount": _money(amount),
                    "tax": _money(tax),
                    "total": _money(amount + tax),
                }))
        rows.append(
            _Row(
                {
                    "particulars": f"Subtotal - {CATEGORY_LABELS[cat]}",
                    "amount": _money(sub_amount),
                    "tax": _money(sub_tax),
                    "total": _money(sub_amount + sub_tax),
                },
                kind="subtotal",
            ))

    if not rows:
        rows.append(_Row({"particulars": "No billable items"}))
    _draw_table(lay, cols, rows)


def totals_rows(doc: InvoiceDocument) -> List[Tuple[str, str, str]]:
    f = doc.financials.rounded()
    kind = (doc.discount_type or "none").lower()

    disc_label = "Discount"
    if kind == "percentage" and D(doc.discount_value) > 0:
        disc_label = f"Discount ({_qty(doc.discount_value)}%)"
    tax_label = (f"GST ({_qty(doc.tax_rate)}%)"
                 if doc.include_tax else "GST (not applied)")

    rows = [
        ("Subtotal", _money(f.subtotal), "normal"),
        (disc_label, f"- {_money(f.discount)}", "normal"),
        (tax_label, _money(f.tax), "normal"),
        ("Amount Payable", _money(f.payable), "highlight"),
        ("Amount Paid", _money(f.paid), "normal"),
    ]
    if f.balance < 0:
        rows.append(("Excess Paid (Refund Due)", _money(-f.balance), "total"))
    else:
        rows.append(("Balance Due", _money(f.balance), "total"))
    return rows


def _draw_totals(lay: _Layout, doc: InvoiceDocument) -> None:
    rows = totals_rows(doc)
    panel_w = 280
    h = len(rows) * 18 + 20
    if not lay.room_for(h):
        lay.new_page()

    b = lay.b
    x = lay.right - panel_w
    top = lay.y
    b.fill_color(LIGHT_BG).stroke_color(BORDER).line_width(1)
    b.rect(x - 10, top - h, panel_w + 10, h, fill=True, stroke=True)

    y = top - 10
    for label, value, tier in rows:
        if tier == "total":
            b.fill_color(PRIMARY)
            b.rect(x - 5, y - 15, panel_w, 18, fill=True, stroke=False)
            b.fill_color(colors.white).font("Helvetica-Bold", 11)
        elif tier == "highlight":
            b.fill_color(SECONDARY).font("Helvetica-Bold", 10)
        else:
            b.fill_color(TEXT).font("Helvetica", 9)
        b.text(x, y - 11, label)
        b.text(x + panel_w - 15, y - 11, value, align="right")
        y -= 18

    # payment facts to the left of the panel
    info_x = lay.left
    iy = top - 12
    b.fill_color(TEXT).font("Helvetica-Bold", FONT_SIZE)
    b.text(info_x, iy, f"Invoice No: {doc.invoice_number}")
    b.font("Helvetica", FONT_SIZE)
    info_w = x - 20 - info_x
    for line in (
            f"Payment Status: {_s(doc.status).upper()}",
            f"Payment Method: {_s(doc.payment_method)}",
            f"Last Payment: {_fmt_date(doc.last_payment_date)}",
            f"Discount Reason: {doc.discount_reason}" if doc.discount_reason else "",
    ):
        if line:
            iy -= 12
            b.text(info_x, iy, fit_text(line, info_w, "Helvetica", FONT_SIZE))

    lay.y = top - h - 10


def _draw_footer(lay: _Layout, doc: InvoiceDocument) -> FooterPlacement:
    placement = place_footer(lay.y)
    if placement.crowded:
        logger.debug("Footer crowded on invoice %s (cursor at %.1f)",
                     doc.invoice_number, lay.y)
    b = lay.b
    cx = lay.left + lay.width / 2
    b.stroke_color(BORDER).line_width(0.5)
    b.line(lay.left, placement.y + 12, lay.right, placement.y + 12)
    b.fill_color(TEXT).font("Helvetica-Oblique", 8)
    b.text(cx, placement.y, DISCLAIMER, align="center")
    b.font("Helvetica", 7)
    b.text(cx, placement.y - 11, f"Generated on: {_fmt_dt(doc.generated_at)}", align="center")
    return placement


def _draw_narrative(lay: _Layout, doc: InvoiceDocument) -> None:
    lay.new_page()
    b = lay.b
    b.fill_color(PRIMARY).font("Helvetica-Bold", 14)
    b.text(lay.left, lay.y, "ADMISSION SUMMARY")
    lay.y -= 16
    b.fill_color(TEXT).font("Helvetica", 9)
    b.text(lay.left, lay.y,
           fit_text(f"{_s(doc.patient.name)} | Admission No: {_s(doc.admission.admission_number)}",
                    lay.width, "Helvetica", 9))
    lay.y -= 8
    b.stroke_color(PRIMARY).line_width(1)
    b.line(lay.left, lay.y, lay.right, lay.y)
    lay.y -= 20

    leading = 12
    for sec in doc.narrative:
        if not lay.room_for(14 + leading):
            lay.new_page()
        b.fill_color(PRIMARY).font("Helvetica-Bold", 10)
        b.text(lay.left, lay.y, sec.title)
        lay.y -= 14
        b.fill_color(TEXT).font("Helvetica", 9)
        for para in (sec.body or "--").splitlines() or ["--"]:
            for line in simpleSplit(para, "Helvetica", 9, lay.width) or [""]:
                if not lay.room_for(leading):
                    lay.new_page()
                    b.fill_color(TEXT).font("Helvetica", 9)
                b.text(lay.left, lay.y, line)
                lay.y -= leading
        lay.y -= 8


# -----------------------------
# Entry points
# -----------------------------
def build_invoice_document(doc: InvoiceDocument) -> DocumentBuilder:
    builder = DocumentBuilder(
        A4,
        title=f"Invoice {doc.invoice_number}",
        author=doc.identity.name,
        number_pages=doc.options.number_pages,
    )
    lay = _Layout(builder)

    _draw_header(lay, doc)
    _draw_patient_block(lay, doc)
    _draw_summary(lay, doc)
    _draw_breakup(lay, doc)
    _draw_totals(lay, doc)
    _draw_footer(lay, doc)

    if doc.options.include_narrative and doc.narrative:
        _draw_narrative(lay, doc)
    return builder


def compose_invoice_pdf(doc: InvoiceDocument) -> bytes:
    try:
        return build_invoice_document(doc).finalize()
    except Exception as e:
        logger.exception("Invoice PDF composition failed for %s", doc.invoice_number)
        raise DocumentGenerationError() from e
