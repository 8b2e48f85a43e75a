# FILE: hospital_billing/services/charge_sources.py
"""
Charge sources that can become invoice line items.

Each source kind is its own small dataclass; `to_line_fields` dispatches to
one mapping function per kind, so adding a kind means adding a dataclass and
a mapper, nothing else.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from hospital_billing.models.billing import (
    ITEM_CUSTOM,
    ITEM_LAB,
    ITEM_MEDICATION,
    ITEM_ROOM,
)
from hospital_billing.services.billing_math import D, line_total, money2, rate4

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class LineFields:
    item_type: str
    item_name: str
    item_description: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    reference_id: Optional[str]


@dataclass(frozen=True)
class RoomSource:
    segment_id: int
    room_type: Optional[str]
    rate_per_day: Decimal
    start_date: datetime
    end_date: Optional[datetime] = None
    room_number: Optional[str] = None
    bed_number: Optional[str] = None


@dataclass(frozen=True)
class MedicationSource:
    medication_id: int
    name: str
    price_per_unit: Decimal
    units_per_dose: Decimal
    doses_administered: int
    catalog_price_per_unit: Optional[Decimal] = None
    catalog_units_per_dose: Optional[Decimal] = None


@dataclass(frozen=True)
class LabSource:
    report_id: int
    report_title: Optional[str]
    test_type: Optional[str]
    price: Decimal


@dataclass(frozen=True)
class CustomSource:
    item_name: str
    quantity: Decimal
    unit_price: Decimal
    item_description: Optional[str] = None


LineItemSource = Union[RoomSource, MedicationSource, LabSource, CustomSource]


# -----------------------------
# helpers
# -----------------------------
def stay_days(start: datetime, end: Optional[datetime], now: datetime) -> int:
    """Whole days, rounded up; a segment still open runs until `now`."""
    finish = end or now
    seconds = (finish - start).total_seconds()
    if seconds <= 0:
        return 0
    return int(math.ceil(seconds / SECONDS_PER_DAY))


def _fmt_date(dt: Optional[datetime]) -> str:
    if not dt:
        return "Present"
    return dt.strftime("%d-%m-%Y")


def _title(s: Optional[str]) -> str:
    s = (s or "").replace("_", " ").replace("-", " ").strip()
    return s.title() if s else "N/A"


def medication_pricing(src: MedicationSource):
    """(price_per_unit, units_per_dose) with catalog fallback for non-positive values."""
    price = D(src.price_per_unit)
    if price <= 0:
        price = D(src.catalog_price_per_unit)

    units = D(src.units_per_dose)
    if units <= 0:
        units = D(src.catalog_units_per_dose) if src.catalog_units_per_dose else Decimal("1")
    return price, units


# -----------------------------
# mappers (one per source kind)
# -----------------------------
def map_room(src: RoomSource, now: datetime) -> LineFields:
    days = stay_days(src.start_date, src.end_date, now)
    rate = D(src.rate_per_day)
    label = _title(src.room_type)
    if src.room_number:
        label = f"{label} ({src.room_number}"
        label += f" / Bed {src.bed_number})" if src.bed_number else ")"
    return LineFields(
        item_type=ITEM_ROOM,
        item_name=f"Room/Bed - {label}",
        item_description=(f"Charges from {_fmt_date(src.start_date)} "
                          f"to {_fmt_date(src.end_date)}"),
        quantity=Decimal(days),
        unit_price=rate,
        total_price=line_total(days, rate),
        reference_id=str(src.segment_id),
    )


def map_medication(src: MedicationSource, now: Optional[datetime] = None) -> LineFields:
    price, units = medication_pricing(src)
    doses = int(src.doses_administered or 0)
    per_dose = rate4(price * units)
    return LineFields(
        item_type=ITEM_MEDICATION,
        item_name=src.name,
        item_description=f"Medication administered - {doses} doses",
        quantity=Decimal(doses),
        unit_price=per_dose,
        total_price=money2(per_dose * doses),
        reference_id=str(src.medication_id),
    )


def map_lab(src: LabSource, now: Optional[datetime] = None) -> LineFields:
    price = D(src.price)
    return LineFields(
        item_type=ITEM_LAB,
        item_name=src.report_title or src.test_type or "Lab Report",
        item_description=f"Lab Test: {src.test_type or 'General'}",
        quantity=Decimal("1"),
        unit_price=price,
        total_price=price,
        reference_id=str(src.report_id),
    )


def map_custom(src: CustomSource, now: Optional[datetime] = None) -> LineFields:
    qty = D(src.quantity) if src.quantity is not None else Decimal("1")
    price = D(src.unit_price)
    return LineFields(
        item_type=ITEM_CUSTOM,
        item_name=src.item_name,
        item_description=src.item_description,
        quantity=qty,
        unit_price=price,
        total_price=line_total(qty, price),
        reference_id=None,
    )


_MAPPERS = {
    RoomSource: map_room,
    MedicationSource: map_medication,
    LabSource: map_lab,
    CustomSource: map_custom,
}


def to_line_fields(src: LineItemSource, now: Optional[datetime] = None) -> LineFields:
    fn = _MAPPERS.get(type(src))
    if fn is None:
        raise TypeError(f"Unsupported charge source: {type(src).__name__}")
    return fn(src, now or datetime.utcnow())


# -----------------------------
# ORM rows -> sources
# -----------------------------
def room_source_from_row(row) -> RoomSource:
    room = getattr(row, "room", None)
    bed = getattr(row, "bed", None)
    return RoomSource(
        segment_id=int(row.id),
        room_type=row.room_type or (room.room_type if room is not None else None),
        rate_per_day=D(row.rate_per_day),
        start_date=row.start_date,
        end_date=row.end_date,
        room_number=room.room_number if room is not None else None,
        bed_number=bed.bed_number if bed is not None else None,
    )


def medication_source_from_row(row) -> MedicationSource:
    catalog = getattr(row, "catalog", None)
    return MedicationSource(
        medication_id=int(row.id),
        name=row.name,
        price_per_unit=D(row.price_per_unit),
        units_per_dose=D(row.units_per_dose),
        doses_administered=int(row.doses_administered or 0),
        catalog_price_per_unit=D(catalog.price_per_unit) if catalog is not None else None,
        catalog_units_per_dose=(D(catalog.default_units_per_dose)
                                if catalog is not None else None),
    )


def lab_source_from_row(row) -> LabSource:
    return LabSource(
        report_id=int(row.id),
        report_title=row.report_title,
        test_type=row.test_type,
        price=D(row.price),
    )
