# carelog/routes/statistics.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from ..dependencies import get_store
from ..service.statistics import compute_statistics

router = APIRouter()


@router.get("/", summary="Hours and services per company and patient")
async def fetch_statistics(start: Optional[date] = None, end: Optional[date] = None, store=Depends(get_store)):
    return {"status": "ok", "statistics": await compute_statistics(store, start, end)}
