"""Liveness endpoint."""

from fastapi import APIRouter

from ngo_reporting.core.config import get_settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Report liveness and the currency all totals are expressed in."""

    return {"status": "ok", "base_currency": get_settings().base_currency}
