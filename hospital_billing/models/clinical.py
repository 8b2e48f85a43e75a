# FILE: hospital_billing/models/clinical.py
"""
Admission context read by billing.

These tables are owned by the patient / ward / pharmacy / lab modules; billing
only reads them (lab reports additionally get their billing_status flipped).
"""
from __future__ import annotations

from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Text,
)
from sqlalchemy.orm import relationship

from hospital_billing.db.base import Base


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(16), nullable=True)
    address = Column(String(500), nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)

    admissions = relationship("Admission", back_populates="patient")


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    # admin | doctor | nurse | billing | accountant | ...
    role = Column(String(32), nullable=False, default="staff")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(32), nullable=False)
    room_type = Column(String(50), nullable=True)  # general | semi_private | private | icu
    rate_per_day = Column(Numeric(12, 2), default=0)


class Bed(Base):
    __tablename__ = "beds"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    bed_number = Column(String(32), nullable=False)

    room = relationship("Room")


class Admission(Base):
    __tablename__ = "admissions"

    id = Column(Integer, primary_key=True, index=True)
    # human facing admission number (ADM-2024-0001 etc.)
    admission_code = Column(String(50), unique=True, index=True, nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("staff.id"), nullable=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    bed_id = Column(Integer, ForeignKey("beds.id"), nullable=True)

    admission_date = Column(DateTime, default=datetime.utcnow)
    discharge_date = Column(DateTime, nullable=True)
    status = Column(String(20), default="admitted")  # admitted | discharged

    patient = relationship("Patient", back_populates="admissions")
    doctor = relationship("Staff")
    room = relationship("Room")
    bed = relationship("Bed")
    room_history = relationship("RoomHistory",
                                back_populates="admission",
                                order_by="RoomHistory.start_date")
    summary = relationship("AdmissionSummary",
                           back_populates="admission",
                           uselist=False)


class RoomHistory(Base):
    """One occupancy segment: a stay in one room/bed at one daily rate."""
    __tablename__ = "room_history"
    __table_args__ = (Index("ix_room_history_admission", "admission_id",
                            "start_date"), )

    id = Column(Integer, primary_key=True, index=True)
    admission_id = Column(Integer, ForeignKey("admissions.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    bed_id = Column(Integer, ForeignKey("beds.id"), nullable=True)
    room_type = Column(String(50), nullable=True)
    rate_per_day = Column(Numeric(12, 2), default=0)
    start_date = Column(DateTime, nullable=False)
    # NULL while the patient is still in this room
    end_date = Column(DateTime, nullable=True)

    admission = relationship("Admission", back_populates="room_history")
    room = relationship("Room")
    bed = relationship("Bed")


class MedicationCatalog(Base):
    __tablename__ = "medication_catalog"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    price_per_unit = Column(Numeric(12, 2), default=0)
    default_units_per_dose = Column(Numeric(10, 2), default=1)


class PatientMedication(Base):
    """Dosing aggregate of one prescribed medication for one admission."""
    __tablename__ = "patient_medications"

    id = Column(Integer, primary_key=True, index=True)
    admission_id = Column(Integer, ForeignKey("admissions.id"), nullable=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    medication_catalog_id = Column(Integer,
                                   ForeignKey("medication_catalog.id"),
                                   nullable=True)
    name = Column(String(200), nullable=False)
    dosage = Column(String(100), nullable=True)
    frequency = Column(String(100), nullable=True)
    price_per_unit = Column(Numeric(12, 2), default=0)
    units_per_dose = Column(Numeric(10, 2), default=1)
    doses_administered = Column(Integer, default=0)
    total_doses = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    catalog = relationship("MedicationCatalog")


class LabReport(Base):
    __tablename__ = "lab_reports"

    id = Column(Integer, primary_key=True, index=True)
    admission_id = Column(Integer, ForeignKey("admissions.id"), nullable=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
    report_title = Column(String(200), nullable=False)
    test_type = Column(String(100), nullable=True)
    report_description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), default=0)
    # pending | billed
    billing_status = Column(String(16), default="pending", index=True)
    # either a direct URL or a key in object storage
    pdf_url = Column(String(1000), nullable=True)
    pdf_storage_path = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AdmissionSummary(Base):
    __tablename__ = "admission_summaries"

    id = Column(Integer, primary_key=True, index=True)
    admission_id = Column(Integer, ForeignKey("admissions.id"), nullable=False, unique=True)
    chief_complaint = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment_provided = Column(Text, nullable=True)
    outcome = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)

    admission = relationship("Admission", back_populates="summary")
