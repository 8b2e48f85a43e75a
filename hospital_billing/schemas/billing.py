# FILE: hospital_billing/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

InvoiceStatus = Literal["pending", "partial", "paid"]
DiscountType = Literal["none", "percentage", "fixed"]


# ---------- requests ----------
class InvoiceCreate(BaseModel):
    # numeric id or admission code
    admission_id: Union[int, str]
    include_tax: bool = False
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)


class CustomItemIn(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=300)
    item_description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)


class ComprehensiveInvoiceIn(BaseModel):
    admission_id: Union[int, str]
    include_room_charges: bool = True
    include_medication_charges: bool = True
    include_lab_reports: bool = False
    medication_item_ids: List[int] = Field(default_factory=list)
    lab_report_ids: List[int] = Field(default_factory=list)
    custom_items: List[CustomItemIn] = Field(default_factory=list)
    include_tax: bool = False
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)


class ItemUpdate(BaseModel):
    item_name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    item_description: Optional[str] = None
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    paid_amount: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("paid_amount", "amount_paid"))
    last_payment_date: Optional[datetime] = None
    include_tax: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("include_tax", "include_gst"))
    tax_rate: Optional[Decimal] = Field(
        default=None, ge=0, le=100, validation_alias=AliasChoices("tax_rate", "gst_rate"))
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_notes: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)
    discount_reason: Optional[str] = None


class SendEmailIn(BaseModel):
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    include_lab_reports: bool = Field(
        default=False, validation_alias=AliasChoices("include_lab_reports", "includeLabReports"))
    include_summary: bool = Field(
        default=False, validation_alias=AliasChoices("include_summary", "includeSummary"))


# ---------- responses ----------
class LineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    item_type: str
    item_name: str
    item_description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    reference_id: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    admission_id: int
    status: str
    total_amount: Decimal
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    discount_reason: Optional[str] = None
    include_tax: bool
    tax_rate: Decimal
    paid_amount: Decimal
    last_payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_notes: Optional[str] = None
    generated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FinancialsOut(BaseModel):
    subtotal: Decimal
    discount: Decimal
    discounted_subtotal: Decimal
    tax: Decimal
    payable: Decimal
    paid: Decimal
    balance: Decimal
