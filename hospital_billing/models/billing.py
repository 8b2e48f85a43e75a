# FILE: hospital_billing/models/billing.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    Index,
    ForeignKey,
    UniqueConstraint,
    Text,
)
from sqlalchemy.orm import relationship

from hospital_billing.db.base import Base

ITEM_ROOM = "room"
ITEM_MEDICATION = "medication"
ITEM_LAB = "lab"
ITEM_CUSTOM = "custom"
ITEM_TYPES = (ITEM_ROOM, ITEM_MEDICATION, ITEM_LAB, ITEM_CUSTOM)

INVOICE_STATUSES = ("pending", "partial", "paid")
DISCOUNT_TYPES = ("none", "percentage", "fixed")


class Invoice(Base):
    """
    Bill for one admission.

    total_amount is derived: it always equals the sum of the line items'
    total_price and is recomputed by the charge ledger after every mutation.
    Discount, tax and balance are never stored; they are derived on read.
    """

    __tablename__ = "billing_invoices"
    __table_args__ = (Index("ix_billing_invoices_admission", "admission_id"), )

    id = Column(Integer, primary_key=True, index=True)

    # INV-000001 etc.
    invoice_number = Column(String(32), unique=True, index=True, nullable=False)

    admission_id = Column(Integer, ForeignKey("admissions.id"), nullable=False)

    # pending | partial | paid
    status = Column(String(16), nullable=False, default="pending")

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # none | percentage | fixed  (NULL means none)
    discount_type = Column(String(16), nullable=True)
    discount_value = Column(Numeric(12, 2), nullable=True, default=0)
    discount_reason = Column(String(255), nullable=True)

    include_tax = Column(Boolean, nullable=False, default=False)
    # percent, e.g. 18 for 18%
    tax_rate = Column(Numeric(5, 2), nullable=False, default=18)

    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    last_payment_date = Column(DateTime, nullable=True)
    payment_method = Column(String(32), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    payment_notes = Column(Text, nullable=True)

    generated_by = Column(Integer, ForeignKey("staff.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("staff.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    admission = relationship("Admission")
    items = relationship(
        "LineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="LineItem.id",
    )


class LineItem(Base):
    __tablename__ = "billing_line_items"
    __table_args__ = (
        # one materialized line per charge source per invoice;
        # custom items keep reference_id NULL and never collide
        UniqueConstraint(
            "invoice_id",
            "item_type",
            "reference_id",
            name="uq_billing_line_item_source",
        ),
        Index("ix_billing_line_items_invoice", "invoice_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(
        Integer,
        ForeignKey("billing_invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # room | medication | lab | custom
    item_type = Column(String(16), nullable=False)
    item_name = Column(String(300), nullable=False)
    item_description = Column(Text, nullable=True)

    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 4), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)

    # id of the room_history / patient_medications / lab_reports row
    reference_id = Column(String(64), nullable=True)

    created_by = Column(Integer, ForeignKey("staff.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("staff.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    invoice = relationship("Invoice", back_populates="items")


class NumberSeries(Base):
    """Sequential invoice numbering; the row is locked while taking a number."""
    __tablename__ = "billing_number_series"

    id = Column(Integer, primary_key=True)
    prefix = Column(String(16), nullable=False, unique=True)
    padding = Column(Integer, nullable=False, default=6)
    next_number = Column(Integer, nullable=False, default=1)
