# hospital_billing/api/router.py
from fastapi import APIRouter
from hospital_billing.api import (
    routes_billing,
    routes_billing_print,
)

api_router = APIRouter()

api_router.include_router(routes_billing.router)
api_router.include_router(routes_billing_print.router)
