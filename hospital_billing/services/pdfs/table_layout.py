# FILE: hospital_billing/services/pdfs/table_layout.py
"""
Column fitting and cell text fitting for the invoice tables.

Both functions are pure: same inputs, same output, no canvas needed.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from reportlab.pdfbase.pdfmetrics import stringWidth

ELLIPSIS = "..."


@dataclass(frozen=True)
class TableColumn:
    key: str
    label: str
    width: float
    min_width: float
    align: str = "left"  # left | right | center


def fit_columns(
    columns: Sequence[TableColumn],
    target_width: float,
    shrink_order: Optional[Sequence[str]] = None,
    step: float = 1.0,
) -> List[TableColumn]:
    """
    Narrow `columns` until their widths sum to <= target_width.

    Each pass takes `step` points off the first column (in `shrink_order`)
    still wider than its minimum. Stops when the table fits or every column
    sits at its minimum; the table may then overflow.
    """
    widths = {c.key: float(c.width) for c in columns}
    floors = {c.key: float(c.min_width) for c in columns}
    order = [k for k in (shrink_order or [c.key for c in columns]) if k in widths]

    total = sum(widths.values())
    while total > target_width:
        key = next((k for k in order if widths[k] > floors[k]), None)
        if key is None:
            break
        cut = min(step, widths[key] - floors[key])
        widths[key] -= cut
        total -= cut

    return [replace(c, width=widths[c.key]) for c in columns]


def text_width(text: str, font: str, size: float) -> float:
    return stringWidth(text or "", font, size)


def fit_text(
    text: str,
    max_width: float,
    font: str = "Helvetica",
    size: float = 8,
    measure: Optional[Callable[[str, str, float], float]] = None,
) -> str:
    """
    Truncate with a trailing ellipsis until the text fits in max_width.
    When nothing fits, falls back to the first three characters plus the
    ellipsis even if that overflows.  Never returns an empty string.
    """
    measure = measure or text_width
    text = "" if text is None else str(text)
    if not text:
        return "--"
    if measure(text, font, size) <= max_width:
        return text

    cut = text
    while cut and measure(cut + ELLIPSIS, font, size) > max_width:
        cut = cut[:-1]
    if cut:
        return cut + ELLIPSIS
    return text[:3] + ELLIPSIS


def column_offsets(left: float, columns: Sequence[TableColumn]) -> List[Tuple[float, TableColumn]]:
    out: List[Tuple[float, TableColumn]] = []
    x = left
    for c in columns:
        out.append((x, c))
        x += c.width
    return out


# -----------------------------
# Column sets used by the invoice
# -----------------------------
BREAKUP_COLUMNS: List[TableColumn] = [
    TableColumn("code", "Code", 55, 45),
    TableColumn("date", "Date", 90, 70),
    TableColumn("particulars", "Particulars", 120, 120),
    TableColumn("rate", "Rate", 70, 55, "right"),
    TableColumn("qty", "Qty", 35, 35, "center"),
    TableColumn("amount", "Amount", 70, 60, "right"),
    TableColumn("tax", "GST", 70, 60, "right"),
    TableColumn("total", "Total", 70, 60, "right"),
]

# free text first, then secondary numbers, then date/code; qty never gives width
BREAKUP_SHRINK_ORDER = ["particulars", "rate", "amount", "tax", "total", "date", "code"]

SUMMARY_COLUMNS: List[TableColumn] = [
    TableColumn("sno", "S.No", 40, 30, "center"),
    TableColumn("particulars", "Particulars", 300, 150),
    TableColumn("qty", "Qty", 50, 35, "center"),
    TableColumn("amount", "Amount (Rs.)", 110, 80, "right"),
]

SUMMARY_SHRINK_ORDER = ["particulars", "amount", "sno"]


def breakup_columns(content_width: float) -> List[TableColumn]:
    # particulars takes whatever the fixed columns leave, never below its floor
    fixed = sum(c.width for c in BREAKUP_COLUMNS if c.key != "particulars")
    cols = [
        replace(c, width=max(c.min_width, content_width - fixed))
        if c.key == "particulars" else c for c in BREAKUP_COLUMNS
    ]
    return fit_columns(cols, content_width, BREAKUP_SHRINK_ORDER)


def summary_columns(content_width: float) -> List[TableColumn]:
    fixed = sum(c.width for c in SUMMARY_COLUMNS if c.key != "particulars")
    cols = [
        replace(c, width=max(c.min_width, content_width - fixed))
        if c.key == "particulars" else c for c in SUMMARY_COLUMNS
    ]
    return fit_columns(cols, content_width, SUMMARY_SHRINK_ORDER)
