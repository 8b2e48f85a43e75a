# hospital_billing/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Billing tables and the admission context they read from."""
    pass


# Import all models so metadata is complete for create_all()
from hospital_billing.models import (  # noqa: F401,E402
    clinical,
    billing,
)
