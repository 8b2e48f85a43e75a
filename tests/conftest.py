"""Pytest configuration and fixtures."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hospital_billing.db.base import Base
from hospital_billing.models.clinical import (
    Admission,
    AdmissionSummary,
    Bed,
    LabReport,
    MedicationCatalog,
    Patient,
    PatientMedication,
    Room,
    RoomHistory,
    Staff,
)

NOW = datetime(2026, 10, 18, 10, 30)


# ---------------------------------------------------------------------------
# Database: SQLite in memory, one fresh schema per test
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # let SQLAlchemy own BEGIN so SAVEPOINTs nest properly under pysqlite
    @event.listens_for(eng, "connect")
    def _no_implicit_tx(dbapi_conn, _rec):
        dbapi_conn.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    """Fixed 'now' for room-charge day counts."""
    return lambda: NOW


# ---------------------------------------------------------------------------
# Admission with every kind of charge source
# ---------------------------------------------------------------------------

@pytest.fixture
def admission(db):
    doctor = Staff(name="Dr. Meera Rao", email="meera@example.com", role="doctor")
    clerk = Staff(name="Billing Desk", email="billing@example.com", role="billing")
    patient = Patient(
        uid="PAT-0001",
        name="Ravi Kumar",
        date_of_birth=date(1980, 5, 20),
        gender="Male",
        address="12 Lake Road, Coimbatore",
        email="ravi@example.com",
    )
    general = Room(room_number="G-101", room_type="general", rate_per_day=Decimal("1500"))
    icu = Room(room_number="ICU-2", room_type="icu", rate_per_day=Decimal("5000"))
    db.add_all([doctor, clerk, patient, general, icu])
    db.flush()

    bed = Bed(room_id=icu.id, bed_number="B2")
    db.add(bed)
    db.flush()

    adm = Admission(
        admission_code="ADM-2026-0001",
        patient_id=patient.id,
        doctor_id=doctor.id,
        room_id=icu.id,
        bed_id=bed.id,
        admission_date=NOW - timedelta(days=4, hours=12),
    )
    db.add(adm)
    db.flush()

    # 3 closed days in general, then ICU since 1.5 days ago (open segment)
    seg_general = RoomHistory(
        admission_id=adm.id,
        room_id=general.id,
        room_type="general",
        rate_per_day=Decimal("1500"),
        start_date=NOW - timedelta(days=4, hours=12),
        end_date=NOW - timedelta(days=1, hours=12),
    )
    seg_icu = RoomHistory(
        admission_id=adm.id,
        room_id=icu.id,
        bed_id=bed.id,
        room_type="icu",
        rate_per_day=Decimal("5000"),
        start_date=NOW - timedelta(days=1, hours=12),
        end_date=None,
    )

    catalog = MedicationCatalog(name="Ceftriaxone 1g",
                                price_per_unit=Decimal("85"),
                                default_units_per_dose=Decimal("1"))
    db.add_all([seg_general, seg_icu, catalog])
    db.flush()

    paracetamol = PatientMedication(
        admission_id=adm.id,
        patient_id=patient.id,
        name="Paracetamol 500mg",
        price_per_unit=Decimal("2.50"),
        units_per_dose=Decimal("2"),
        doses_administered=6,
    )
    # no price on the aggregate: falls back to the catalog
    ceftriaxone = PatientMedication(
        admission_id=adm.id,
        patient_id=patient.id,
        medication_catalog_id=catalog.id,
        name="Ceftriaxone 1g",
        price_per_unit=Decimal("0"),
        units_per_dose=Decimal("0"),
        doses_administered=4,
    )
    not_given = PatientMedication(
        admission_id=adm.id,
        patient_id=patient.id,
        name="Ondansetron 4mg",
        price_per_unit=Decimal("12"),
        units_per_dose=Decimal("1"),
        doses_administered=0,
    )
    cbc = LabReport(admission_id=adm.id,
                    patient_id=patient.id,
                    report_title="Complete Blood Count",
                    test_type="Hematology",
                    price=Decimal("450"),
                    billing_status="billed",
                    pdf_url="https://files.example.com/reports/cbc.pdf")
    lft = LabReport(admission_id=adm.id,
                    patient_id=patient.id,
                    report_title="Liver Function Test",
                    test_type="Biochemistry",
                    price=Decimal("900"),
                    billing_status="pending",
                    pdf_storage_path="reports/lft.pdf")
    summary = AdmissionSummary(admission_id=adm.id,
                               chief_complaint="High grade fever for 3 days",
                               diagnosis="Community acquired pneumonia",
                               treatment_provided="IV antibiotics, antipyretics",
                               outcome="Improving",
                               recommendations="Review after one week")
    db.add_all([paracetamol, ceftriaxone, not_given, cbc, lft, summary])
    db.commit()

    return SimpleNamespace(
        id=adm.id,
        code=adm.admission_code,
        patient_id=patient.id,
        doctor_id=doctor.id,
        clerk_id=clerk.id,
        seg_general_id=seg_general.id,
        seg_icu_id=seg_icu.id,
        paracetamol_id=paracetamol.id,
        ceftriaxone_id=ceftriaxone.id,
        not_given_id=not_given.id,
        cbc_id=cbc.id,
        lft_id=lft.id,
    )


@pytest.fixture
def empty_admission(db):
    patient = Patient(uid="PAT-0002", name="Empty Stay")
    db.add(patient)
    db.flush()
    adm = Admission(admission_code="ADM-2026-0002",
                    patient_id=patient.id,
                    admission_date=NOW)
    db.add(adm)
    db.commit()
    return SimpleNamespace(id=adm.id, code=adm.admission_code, patient_id=patient.id)
