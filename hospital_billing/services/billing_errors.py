# hospital_billing/services/billing_errors.py
from __future__ import annotations


class BillingError(Exception):
    status_code = 400

    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg


class BillingNotFound(BillingError):
    status_code = 404


class BillingValidationError(BillingError):
    status_code = 400


class DocumentGenerationError(BillingError):
    """Composition or primary document failure; no partial PDF is returned."""
    status_code = 500

    def __init__(self, msg: str = "Failed to generate PDF"):
        super().__init__(msg)


class ChargeSourceError(BillingError):
    """One charge category could not be read; the ledger skips it."""
    status_code = 502
