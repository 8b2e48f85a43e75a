from __future__ import annotations

import re
from typing import Optional

from sqlalchemy.orm import Session

from hospital_billing.core.config import settings
from hospital_billing.models.billing import Invoice, NumberSeries


def _highest_issued(db: Session, prefix: str) -> int:
    # seeds a new series from invoices numbered before the series existed
    rows = (db.query(Invoice.invoice_number).filter(
        Invoice.invoice_number.like(f"{prefix}%")).all())
    best = 0
    pat = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    for (num, ) in rows:
        m = pat.match(num or "")
        if m:
            best = max(best, int(m.group(1)))
    return best


def next_invoice_number(
    db: Session,
    *,
    prefix: Optional[str] = None,
    padding: Optional[int] = None,
) -> str:
    """INV-000001, INV-000002, ... ; the series row is locked while taking a number."""
    prefix = prefix if prefix is not None else settings.INVOICE_NUMBER_PREFIX
    padding = int(padding or settings.INVOICE_NUMBER_PADDING)

    row = (db.query(NumberSeries).filter(
        NumberSeries.prefix == prefix).with_for_update().first())

    if not row:
        row = NumberSeries(
            prefix=prefix,
            padding=padding,
            next_number=_highest_issued(db, prefix) + 1,
        )
        db.add(row)
        db.flush()

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    return f"{prefix}{str(n).zfill(int(row.padding or padding))}"

